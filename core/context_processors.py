from django.conf import settings


def app_config(request):
    return {
        "APP_NAME": getattr(settings, "APP_NAME", "NepalCrowdRise"),
        "CURRENCY_SYMBOL": getattr(settings, "CURRENCY_SYMBOL", "Rs."),
        "CURRENCY_CODE": getattr(settings, "CURRENCY_CODE", "NPR"),
    }
