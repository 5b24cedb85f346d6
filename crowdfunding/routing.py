from django.urls import path
from . import consumers

websocket_urlpatterns = [
    path("fonepay/<str:payment_id>/", consumers.FonepayPaymentConsumer.as_asgi()),
]
