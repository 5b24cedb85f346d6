"""Employee API calls behind the staff consoles. Every call after login carries the employee token."""
from core import backend
from core.backend import BackendError

WITHDRAWAL_DEPARTMENT = "WITHDRAWAL_DEPARTMENT"

DEPARTMENTS = [
    ("USER_KYC_VERIFIER", "User KYC Verification"),
    ("CAMPAIGN_VERIFIER", "Campaign Verification"),
    (WITHDRAWAL_DEPARTMENT, "Withdrawal Processing"),
    ("TRANSACTION_MANAGEMENT", "Transaction Management"),
    ("LEGAL_AUTHORITY_DEPARTMENT", "Legal & Compliance"),
]

WITHDRAWAL_STATUSES = ["pending", "approved", "rejected", "processing", "completed", "failed"]
BANK_ACCOUNT_STATUSES = ["pending", "verified", "rejected"]

PAGE_SIZE = 20


def _with_id(item):
    # templates can't read "_id"
    if isinstance(item, dict) and "id" not in item and item.get("_id"):
        return dict(item, id=str(item["_id"]))
    return item


# ---------- auth ----------

def request_login_otp(designation_number, phone, access_code):
    body = backend.post(
        "/api/employee/request-login-otp",
        {"designationNumber": designation_number.upper(), "phone": phone.strip(), "accessCode": access_code.strip()},
        error_message="Failed to send OTP",
    )
    if not body.get("employeeId"):
        raise BackendError("Failed to send OTP")
    return {"employeeId": body["employeeId"], "department": body.get("department")}


def verify_login_otp(employee_id, otp):
    body = backend.post(
        "/api/employee/verify-otp-login",
        {"employeeId": employee_id, "otp": otp.strip()},
        error_message="Invalid OTP",
    )
    if not body.get("token"):
        raise BackendError("Invalid OTP")
    return {"token": body["token"], "employee": body.get("employee") or {}}


def get_profile(token):
    body = backend.get("/api/employee/profile", token=token, error_message="Authentication failed")
    return backend.unwrap(body) or {}


def logout(token):
    return backend.post("/api/employee/logout", token=token, error_message="Logout failed")


# ---------- lists ----------

def _list(path, token, page, limit, status, search, error_message):
    params = {"page": page, "limit": limit}
    if status and status != "all":
        params["status"] = status
    if search:
        params["search"] = search

    body = backend.get(path, token=token, params=params, error_message=error_message)
    items = [_with_id(x) for x in (backend.unwrap(body) or [])]
    return items, body.get("pagination") or {}


def list_withdrawals(token, page=1, limit=PAGE_SIZE, status=None, search=None):
    return _list("/api/employee/withdrawals", token, page, limit, status, search, "Failed to load withdrawals")


def list_bank_accounts(token, page=1, limit=PAGE_SIZE, status=None, search=None):
    return _list("/api/employee/bank-accounts", token, page, limit, status, search, "Failed to load bank accounts")


# ---------- withdrawals ----------

def get_withdrawal(token, withdrawal_id):
    body = backend.get(
        f"/api/employee/withdrawals/{withdrawal_id}", token=token,
        error_message="Failed to load withdrawal details",
    )
    return _with_id(backend.unwrap(body) or {})


def approve_withdrawal(token, withdrawal_id, notes=""):
    return backend.post(
        f"/api/employee/withdrawals/{withdrawal_id}/approve", {"notes": notes}, token=token,
        error_message="Failed to approve withdrawal",
    )


def reject_withdrawal(token, withdrawal_id, reason):
    return backend.post(
        f"/api/employee/withdrawals/{withdrawal_id}/reject", {"reason": reason}, token=token,
        error_message="Failed to reject withdrawal",
    )


def withdrawal_statistics(token):
    body = backend.get(
        "/api/employee/withdrawals-stats/overview", token=token,
        error_message="Failed to load statistics",
    )
    return backend.unwrap(body) or {}


def can_process_withdrawal(withdrawal) -> bool:
    processed_by = withdrawal.get("employeeProcessedBy") or {}
    return withdrawal.get("status") == "pending" and not processed_by.get("employeeId")


# ---------- bank accounts ----------

def get_bank_account(token, account_id):
    body = backend.get(
        f"/api/employee/bank-accounts/{account_id}", token=token,
        error_message="Failed to load bank account details",
    )
    return _with_id(backend.unwrap(body) or {})


def verify_bank_account(token, account_id, notes=""):
    return backend.post(
        f"/api/employee/bank-accounts/{account_id}/verify", {"notes": notes}, token=token,
        error_message="Failed to verify bank account",
    )


def reject_bank_account(token, account_id, reason):
    return backend.post(
        f"/api/employee/bank-accounts/{account_id}/reject", {"reason": reason}, token=token,
        error_message="Failed to reject bank account",
    )


def bank_account_statistics(token):
    body = backend.get(
        "/api/employee/bank-accounts-stats/overview", token=token,
        error_message="Failed to load statistics",
    )
    return backend.unwrap(body) or {}


def can_review_bank_account(account) -> bool:
    return account.get("verificationStatus") == "pending"
