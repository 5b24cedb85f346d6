from django import forms


class EmployeeLoginForm(forms.Form):
    designation_number = forms.CharField(
        max_length=50, widget=forms.TextInput(attrs={"class": "form-control", "autocomplete": "off"}),
    )
    phone = forms.CharField(max_length=20, widget=forms.TextInput(attrs={"class": "form-control"}))
    access_code = forms.RegexField(
        regex=r"^\d{5}$",
        error_messages={"invalid": "Access code must be 5 digits."},
        widget=forms.PasswordInput(attrs={"class": "form-control", "inputmode": "numeric", "maxlength": 5}),
    )

    def clean_designation_number(self):
        return self.cleaned_data["designation_number"].strip().upper()

    def clean_phone(self):
        return self.cleaned_data["phone"].strip()


class EmployeeOtpForm(forms.Form):
    otp = forms.RegexField(
        regex=r"^\d{6}$",
        error_messages={"invalid": "Enter the 6-digit code sent to your phone."},
        widget=forms.TextInput(attrs={"class": "form-control", "inputmode": "numeric", "maxlength": 6}),
    )


class BankVerifyForm(forms.Form):
    notes = forms.CharField(
        required=False, widget=forms.Textarea(attrs={"class": "form-control", "rows": 3}),
    )


class BankRejectForm(forms.Form):
    reason = forms.CharField(
        required=False, widget=forms.Textarea(attrs={"class": "form-control", "rows": 3}),
    )

    def clean_reason(self):
        reason = (self.cleaned_data.get("reason") or "").strip()
        if not reason:
            raise forms.ValidationError("Please provide a reason for rejection")
        return reason


class WithdrawalApproveForm(forms.Form):
    notes = forms.CharField(
        required=False, widget=forms.Textarea(attrs={"class": "form-control", "rows": 3}),
    )


class WithdrawalRejectForm(forms.Form):
    reason = forms.CharField(
        required=False, widget=forms.Textarea(attrs={"class": "form-control", "rows": 3}),
    )

    def clean_reason(self):
        reason = (self.cleaned_data.get("reason") or "").strip()
        if not reason:
            raise forms.ValidationError("Please provide a rejection reason (minimum 10 characters)")
        if len(reason) < 10:
            raise forms.ValidationError("Rejection reason must be at least 10 characters long")
        return reason
