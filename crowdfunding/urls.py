from django.urls import path
from . import views

urlpatterns = [
    path("campaigns/<str:campaign_id>/", views.campaign_detail, name="campaign_detail"),
    path("campaigns/<str:campaign_id>/donate/", views.donate, name="donate"),
    path("campaigns/<str:campaign_id>/donations/", views.campaign_donations, name="campaign_donations"),
    path("campaigns/<str:campaign_id>/share-card/", views.share_card, name="share_card"),

    path("payment/success/", views.payment_success, name="payment_success"),
    path("payment/cancel/", views.payment_cancel, name="payment_cancel"),
    path("payment/error/", views.payment_error, name="payment_error"),
    path("payment/esewa/verify/", views.esewa_verify, name="esewa_verify"),

    path("payment/fonepay/<str:payment_id>/", views.fonepay_payment, name="fonepay_payment"),
    path("payment/fonepay/<str:payment_id>/status/", views.fonepay_status, name="fonepay_status"),
    path("payment/fonepay/<str:payment_id>/cancel/", views.fonepay_cancel, name="fonepay_cancel"),
]
