import logging
from urllib.parse import urlencode

from django.contrib import messages
from django.shortcuts import render, redirect
from django.urls import reverse
from django.views.decorators.http import require_GET, require_POST

from core.backend import BackendError
from . import services
from .forms import (
    EmployeeLoginForm, EmployeeOtpForm,
    BankVerifyForm, BankRejectForm, WithdrawalApproveForm, WithdrawalRejectForm,
)
from .permissions import (
    EMPLOYEE_LOGIN_SESSION_KEY, EMPLOYEE_TOKEN_SESSION_KEY, clear_employee_session, employee_required,
)

logger = logging.getLogger(__name__)

TABS = ("withdrawals", "bank-accounts")


def _dashboard_url(tab="withdrawals"):
    return reverse("employee_dashboard") + "?" + urlencode({"tab": tab})


def _department_name(code):
    return dict(services.DEPARTMENTS).get(code, code or "Unknown")


# ---------- sign in ----------

def employee_login(request):
    if request.method != "POST":
        clear_employee_session(request.session)
        return render(request, "review/login.html", {"form": EmployeeLoginForm(), "step": "credentials"})

    step = request.POST.get("step", "credentials")
    pending = request.session.get(EMPLOYEE_LOGIN_SESSION_KEY)

    if step == "back":
        request.session.pop(EMPLOYEE_LOGIN_SESSION_KEY, None)
        return redirect("employee_login")

    if step == "otp" and pending:
        form = EmployeeOtpForm(request.POST)
        ctx = {"form": form, "step": "otp", "department_name": _department_name(pending.get("department"))}
        if not form.is_valid():
            return render(request, "review/login.html", ctx)

        try:
            result = services.verify_login_otp(pending["employeeId"], form.cleaned_data["otp"])
        except BackendError as e:
            logger.info("Employee OTP rejected for %s: %s", pending["employeeId"], e)
            ctx["error"] = str(e)
            return render(request, "review/login.html", ctx)

        request.session.pop(EMPLOYEE_LOGIN_SESSION_KEY, None)
        request.session.cycle_key()
        request.session[EMPLOYEE_TOKEN_SESSION_KEY] = result["token"]

        department = result["employee"].get("department") or pending.get("department")
        logger.info("Employee %s signed in (%s)", pending["employeeId"], department)
        if department == services.WITHDRAWAL_DEPARTMENT:
            return redirect(_dashboard_url())
        return redirect("employee_portal")

    form = EmployeeLoginForm(request.POST)
    ctx = {"form": form, "step": "credentials"}
    if not form.is_valid():
        return render(request, "review/login.html", ctx)

    cd = form.cleaned_data
    try:
        result = services.request_login_otp(cd["designation_number"], cd["phone"], cd["access_code"])
    except BackendError as e:
        logger.info("Employee OTP request for %s failed: %s", cd["designation_number"], e)
        ctx["error"] = str(e)
        return render(request, "review/login.html", ctx)

    request.session[EMPLOYEE_LOGIN_SESSION_KEY] = result
    messages.success(request, "A one-time code has been sent to your registered phone.")
    return render(request, "review/login.html", {
        "form": EmployeeOtpForm(),
        "step": "otp",
        "department_name": _department_name(result.get("department")),
    })


@require_POST
def employee_logout(request):
    token = request.session.get(EMPLOYEE_TOKEN_SESSION_KEY)
    if token:
        try:
            services.logout(token)
        except BackendError as e:
            logger.info("Backend logout failed, clearing local session anyway: %s", e)
    clear_employee_session(request.session)
    messages.success(request, "You have been signed out.")
    return redirect("employee_login")


@require_GET
@employee_required()
def employee_portal(request):
    department = request.employee.get("department")
    return render(request, "review/portal.html", {
        "employee": request.employee,
        "department_name": _department_name(department),
        "has_console": department == services.WITHDRAWAL_DEPARTMENT,
    })


# ---------- dashboard ----------

@require_GET
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def dashboard(request):
    tab = request.GET.get("tab") if request.GET.get("tab") in TABS else "withdrawals"
    status = request.GET.get("status") or "pending"
    search = (request.GET.get("q") or "").strip()
    try:
        page = max(int(request.GET.get("page", 1)), 1)
    except ValueError:
        page = 1

    statuses = services.WITHDRAWAL_STATUSES if tab == "withdrawals" else services.BANK_ACCOUNT_STATUSES
    if status != "all" and status not in statuses:
        status = "pending"

    token = request.employee_token
    ctx = {
        "employee": request.employee,
        "tab": tab,
        "status": status,
        "statuses": statuses,
        "q": search,
        "page": page,
        "items": [],
        "stats": {},
        "has_more": False,
    }

    try:
        if tab == "withdrawals":
            items, pagination = services.list_withdrawals(token, page=page, status=status, search=search)
            ctx["stats"] = services.withdrawal_statistics(token)
        else:
            items, pagination = services.list_bank_accounts(token, page=page, status=status, search=search)
            ctx["stats"] = services.bank_account_statistics(token)
    except BackendError as e:
        logger.warning("Dashboard %s load failed: %s", tab, e)
        messages.error(request, str(e))
        return render(request, "review/dashboard.html", ctx)

    has_more = bool(pagination.get("hasMore"))
    base = {"tab": tab, "status": status}
    if search:
        base["q"] = search
    ctx.update(
        items=items,
        has_more=has_more,
        next_url="?" + urlencode(dict(base, page=page + 1)) if has_more else None,
        prev_url="?" + urlencode(dict(base, page=page - 1)) if page > 1 else None,
    )
    return render(request, "review/dashboard.html", ctx)


# ---------- withdrawals ----------

def _load_withdrawal(request, withdrawal_id):
    try:
        return services.get_withdrawal(request.employee_token, withdrawal_id), None
    except BackendError as e:
        logger.warning("Withdrawal %s could not be loaded: %s", withdrawal_id, e)
        messages.error(request, str(e))
        return None, redirect(_dashboard_url("withdrawals"))


def _render_withdrawal(request, withdrawal_id, withdrawal,
                       approve_form=None, reject_form=None, error=None, status=200):
    return render(request, "review/withdrawal_detail.html", {
        "employee": request.employee,
        "withdrawal_id": withdrawal_id,
        "withdrawal": withdrawal,
        "can_process": services.can_process_withdrawal(withdrawal),
        "approve_form": approve_form or WithdrawalApproveForm(),
        "reject_form": reject_form or WithdrawalRejectForm(),
        "error": error,
    }, status=status)


def _processable_withdrawal(request, withdrawal_id, **forms):
    """
    Load the withdrawal for a POST action. Returns (withdrawal, None) when it may
    still be processed, else (None, response) with the page to show instead.
    """
    withdrawal, failed = _load_withdrawal(request, withdrawal_id)
    if failed:
        return None, failed
    if not services.can_process_withdrawal(withdrawal):
        logger.info("Refused action on processed withdrawal %s by %s",
                    withdrawal_id, request.employee.get("designationNumber"))
        error = "This withdrawal has already been processed."
        return None, _render_withdrawal(request, withdrawal_id, withdrawal, error=error, status=400, **forms)
    return withdrawal, None


@require_GET
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def withdrawal_detail(request, withdrawal_id):
    withdrawal, failed = _load_withdrawal(request, withdrawal_id)
    if failed:
        return failed
    return _render_withdrawal(request, withdrawal_id, withdrawal)


@require_POST
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def withdrawal_approve(request, withdrawal_id):
    form = WithdrawalApproveForm(request.POST)
    withdrawal, refused = _processable_withdrawal(request, withdrawal_id, approve_form=form)
    if refused:
        return refused
    if not form.is_valid():
        return _render_withdrawal(request, withdrawal_id, withdrawal, approve_form=form, status=400)

    try:
        services.approve_withdrawal(request.employee_token, withdrawal_id, form.cleaned_data["notes"])
    except BackendError as e:
        logger.warning("Approving withdrawal %s failed: %s", withdrawal_id, e)
        return _render_withdrawal(request, withdrawal_id, withdrawal, approve_form=form, error=str(e), status=400)

    logger.info("Withdrawal %s approved by %s", withdrawal_id, request.employee.get("designationNumber"))
    messages.success(request, "Withdrawal approved.")
    return redirect(_dashboard_url("withdrawals"))


@require_POST
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def withdrawal_reject(request, withdrawal_id):
    form = WithdrawalRejectForm(request.POST)
    withdrawal, refused = _processable_withdrawal(request, withdrawal_id, reject_form=form)
    if refused:
        return refused
    if not form.is_valid():
        return _render_withdrawal(request, withdrawal_id, withdrawal, reject_form=form, status=400)

    try:
        services.reject_withdrawal(request.employee_token, withdrawal_id, form.cleaned_data["reason"])
    except BackendError as e:
        logger.warning("Rejecting withdrawal %s failed: %s", withdrawal_id, e)
        return _render_withdrawal(request, withdrawal_id, withdrawal, reject_form=form, error=str(e), status=400)

    logger.info("Withdrawal %s rejected by %s", withdrawal_id, request.employee.get("designationNumber"))
    messages.success(request, "Withdrawal rejected.")
    return redirect(_dashboard_url("withdrawals"))


# ---------- bank accounts ----------

def _load_bank_account(request, account_id):
    try:
        return services.get_bank_account(request.employee_token, account_id), None
    except BackendError as e:
        logger.warning("Bank account %s could not be loaded: %s", account_id, e)
        messages.error(request, str(e))
        return None, redirect(_dashboard_url("bank-accounts"))


def _render_bank_account(request, account_id, account,
                         verify_form=None, reject_form=None, error=None, status=200):
    return render(request, "review/bank_account_detail.html", {
        "employee": request.employee,
        "account_id": account_id,
        "account": account,
        "can_review": services.can_review_bank_account(account),
        "verify_form": verify_form or BankVerifyForm(),
        "reject_form": reject_form or BankRejectForm(),
        "error": error,
    }, status=status)


def _reviewable_bank_account(request, account_id, **forms):
    account, failed = _load_bank_account(request, account_id)
    if failed:
        return None, failed
    if not services.can_review_bank_account(account):
        logger.info("Refused review of bank account %s in status %s",
                    account_id, account.get("verificationStatus"))
        error = "This bank account has already been reviewed."
        return None, _render_bank_account(request, account_id, account, error=error, status=400, **forms)
    return account, None


@require_GET
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def bank_account_detail(request, account_id):
    account, failed = _load_bank_account(request, account_id)
    if failed:
        return failed
    return _render_bank_account(request, account_id, account)


@require_POST
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def bank_account_verify(request, account_id):
    form = BankVerifyForm(request.POST)
    account, refused = _reviewable_bank_account(request, account_id, verify_form=form)
    if refused:
        return refused
    if not form.is_valid():
        return _render_bank_account(request, account_id, account, verify_form=form, status=400)

    try:
        services.verify_bank_account(request.employee_token, account_id, form.cleaned_data["notes"])
    except BackendError as e:
        logger.warning("Verifying bank account %s failed: %s", account_id, e)
        return _render_bank_account(request, account_id, account, verify_form=form, error=str(e), status=400)

    messages.success(request, "Bank account verified.")
    return redirect(_dashboard_url("bank-accounts"))


@require_POST
@employee_required(services.WITHDRAWAL_DEPARTMENT)
def bank_account_reject(request, account_id):
    form = BankRejectForm(request.POST)
    account, refused = _reviewable_bank_account(request, account_id, reject_form=form)
    if refused:
        return refused
    if not form.is_valid():
        return _render_bank_account(request, account_id, account, reject_form=form, status=400)

    try:
        services.reject_bank_account(request.employee_token, account_id, form.cleaned_data["reason"])
    except BackendError as e:
        logger.warning("Rejecting bank account %s failed: %s", account_id, e)
        return _render_bank_account(request, account_id, account, reject_form=form, error=str(e), status=400)

    messages.success(request, "Bank account rejected.")
    return redirect(_dashboard_url("bank-accounts"))
