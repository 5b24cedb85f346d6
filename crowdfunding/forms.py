import re

from django import forms

from .donations import (
    MIN_DONATION, MAX_DONATION, MIN_PLATFORM_FEE, MAX_PLATFORM_FEE, PLATFORM_FEE_STEP,
    PRESET_AMOUNTS, QUICK_PRESET_AMOUNTS, default_platform_fee,
)


def _amount_choices():
    values = sorted(set(QUICK_PRESET_AMOUNTS + PRESET_AMOUNTS))
    return [(str(v), f"Rs. {v:,}") for v in values] + [("custom", "Other amount")]


class DonationAmountForm(forms.Form):
    amount = forms.ChoiceField(choices=_amount_choices, required=False, widget=forms.RadioSelect)
    custom_amount = forms.CharField(
        required=False,
        widget=forms.TextInput(attrs={"class": "form-control", "inputmode": "numeric", "placeholder": "Enter amount"}),
    )
    platform_fee = forms.DecimalField(
        required=False,
        min_value=MIN_PLATFORM_FEE,
        max_value=MAX_PLATFORM_FEE,
        decimal_places=1,
        widget=forms.NumberInput(attrs={
            "type": "range", "min": MIN_PLATFORM_FEE, "max": MAX_PLATFORM_FEE, "step": str(PLATFORM_FEE_STEP),
        }),
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["platform_fee"].initial = default_platform_fee()

    def clean_custom_amount(self):
        return re.sub(r"[^0-9]", "", self.cleaned_data.get("custom_amount") or "")

    def clean_platform_fee(self):
        fee = self.cleaned_data.get("platform_fee")
        if fee is None:
            return default_platform_fee()
        if fee % PLATFORM_FEE_STEP:
            raise forms.ValidationError("Platform fee must be a multiple of 0.5%.")
        return fee

    def clean(self):
        cleaned = super().clean()
        choice = cleaned.get("amount") or ""
        custom = cleaned.get("custom_amount") or ""

        # typing a custom amount overrides any preset
        raw = custom if (choice == "custom" or custom) else choice
        value = int(raw) if raw.isdigit() else 0

        if value < MIN_DONATION:
            raise forms.ValidationError(
                f"Please enter a valid donation amount (minimum Rs. {MIN_DONATION}).", code="min_amount"
            )
        if value > MAX_DONATION:
            raise forms.ValidationError(
                f"The maximum donation amount is Rs. {MAX_DONATION:,}. Please enter a smaller amount.",
                code="max_amount",
            )

        cleaned["donation_amount"] = value
        return cleaned


PAYMENT_METHODS = [("card", "Card"), ("mobileBanking", "Mobile banking / wallet")]
MOBILE_PAYMENT_METHODS = [("esewa", "eSewa"), ("khalti", "Khalti"), ("fonepay", "Fonepay")]


class DonorDetailsForm(forms.Form):
    name = forms.CharField(required=False, max_length=100, widget=forms.TextInput(attrs={"class": "form-control"}))
    email = forms.EmailField(
        required=False, widget=forms.EmailInput(attrs={"class": "form-control"}),
    )
    message = forms.CharField(
        required=False, max_length=500, widget=forms.Textarea(attrs={"class": "form-control", "rows": 3}),
    )
    is_anonymous = forms.BooleanField(required=False)
    payment_method = forms.ChoiceField(choices=PAYMENT_METHODS, initial="card", widget=forms.RadioSelect)
    mobile_payment_method = forms.ChoiceField(
        choices=MOBILE_PAYMENT_METHODS, initial="esewa", required=False, widget=forms.RadioSelect,
    )

    def __init__(self, *args, donor=None, **kwargs):
        super().__init__(*args, **kwargs)
        # auto-fill from the signed-in donor, without overwriting typed values
        if donor and not self.is_bound:
            self.initial.setdefault("name", donor.get("name", ""))
            self.initial.setdefault("email", donor.get("email", ""))

    def clean(self):
        cleaned = super().clean()

        if not (cleaned.get("email") or "").strip() and "email" not in self.errors:
            self.add_error("email", "Please provide your email address to receive the donation receipt.")

        if not cleaned.get("is_anonymous") and not (cleaned.get("name") or "").strip():
            self.add_error("name", "Please provide your name or choose to donate anonymously.")

        if cleaned.get("payment_method") == "mobileBanking" and not cleaned.get("mobile_payment_method"):
            cleaned["mobile_payment_method"] = "esewa"

        return cleaned

    @property
    def gateway(self):
        if self.cleaned_data.get("payment_method") == "mobileBanking":
            return self.cleaned_data.get("mobile_payment_method") or "esewa"
        return "card"
