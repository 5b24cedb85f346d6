from django.urls import path
from . import views

urlpatterns = [
    path("login/", views.employee_login, name="employee_login"),
    path("logout/", views.employee_logout, name="employee_logout"),
    path("portal/", views.employee_portal, name="employee_portal"),

    path("withdrawal-processor/", views.dashboard, name="employee_dashboard"),

    path("withdrawals/<str:withdrawal_id>/", views.withdrawal_detail, name="withdrawal_detail"),
    path("withdrawals/<str:withdrawal_id>/approve/", views.withdrawal_approve, name="withdrawal_approve"),
    path("withdrawals/<str:withdrawal_id>/reject/", views.withdrawal_reject, name="withdrawal_reject"),

    path("bank-accounts/<str:account_id>/", views.bank_account_detail, name="bank_account_detail"),
    path("bank-accounts/<str:account_id>/verify/", views.bank_account_verify, name="bank_account_verify"),
    path("bank-accounts/<str:account_id>/reject/", views.bank_account_reject, name="bank_account_reject"),
]
