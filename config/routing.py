from django.urls import path
from channels.routing import URLRouter

import crowdfunding.routing

websocket_urlpatterns = [
    path("ws/payments/", URLRouter(crowdfunding.routing.websocket_urlpatterns)),
]
