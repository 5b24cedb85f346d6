from core import backend
from core.backend import BackendError


def _require(data, *keys, message):
    if not data or any(not data.get(k) for k in keys):
        raise BackendError(message)
    return data


# ---------- payments ----------

def initiate_khalti_payment(payment_data, token=None):
    body = backend.post(
        "/api/payments/khalti/initiate", payment_data, token=token,
        error_message="Payment initialization failed",
    )
    return _require(backend.unwrap(body), "paymentUrl", message="Payment URL not received from server")


def initiate_esewa_payment(payment_data, token=None):
    body = backend.post(
        "/api/payments/esewa/initiate", payment_data, token=token,
        error_message="Payment initialization failed",
    )
    return _require(
        backend.unwrap(body), "formUrl", "esewaFormData",
        message="eSewa form data not received from server",
    )


def initiate_fonepay_payment(payment_data, token=None):
    body = backend.post(
        "/api/payments/fonepay/initiate", payment_data, token=token,
        error_message="Payment initialization failed",
    )
    return _require(
        backend.unwrap(body), "paymentId", "qrCode",
        message="Fonepay QR code not received from server",
    )


def check_fonepay_status(payment_id, token=None):
    body = backend.post(
        "/api/payments/fonepay/status", {"paymentId": payment_id}, token=token,
        error_message="Payment status check failed",
    )
    return backend.unwrap(body) or {}


def verify_khalti_payment(pidx):
    body = backend.post("/api/payments/khalti/verify", {"pidx": pidx}, error_message="Payment verification failed")
    return backend.unwrap(body) or {}


def verify_esewa_payment(transaction_uuid, payment_id=None):
    body = backend.post(
        "/api/payments/esewa/verify",
        {"transaction_uuid": transaction_uuid, "paymentId": payment_id},
        error_message="Payment verification failed",
    )
    return backend.unwrap(body) or {}


def get_payment(payment_id, token=None):
    body = backend.get(f"/api/payments/{payment_id}", token=token, error_message="Failed to fetch payment details")
    return backend.unwrap(body) or {}


def get_user_payments(token):
    body = backend.get("/api/payments/user/payments", token=token, error_message="Failed to fetch payments")
    return backend.unwrap(body) or []


def get_campaign_payments(campaign_id, token):
    body = backend.get(
        f"/api/payments/campaign/{campaign_id}", token=token,
        error_message="Failed to fetch campaign payments",
    )
    return backend.unwrap(body) or []


# ---------- campaigns ----------

def get_campaign(campaign_id):
    body = backend.get(f"/api/campaigns/{campaign_id}", error_message="Campaign not found")
    campaign = backend.unwrap(body, "campaign")
    if not campaign:
        raise BackendError("Campaign not found", status_code=404)
    return campaign


def get_related_campaigns(campaign_id, category, limit=3):
    params = {
        "page": 1,
        "limit": limit,
        "sortBy": "createdAt",
        "sortOrder": "desc",
        "exclude": campaign_id,
    }
    if category and category != "All Campaigns":
        params["category"] = category

    body = backend.get("/api/campaigns", params=params, error_message="Failed to load related campaigns")
    items = backend.unwrap(body, "campaigns") or []
    items = [c for c in items if str(c.get("_id") or c.get("id")) != str(campaign_id)]
    return items[:limit]


# ---------- donations ----------

def get_top_donor(campaign_id):
    body = backend.get(f"/api/donations/campaign/{campaign_id}/top", error_message="Failed to load top donor")
    return backend.unwrap(body) or None


def get_recent_donations(campaign_id):
    body = backend.get(f"/api/donations/campaign/{campaign_id}/recent", error_message="Failed to load donations")
    return backend.unwrap(body) or []


def list_campaign_donations(campaign_id, page=1, limit=10):
    body = backend.get(
        f"/api/donations/campaign/{campaign_id}",
        params={"page": page, "limit": limit},
        error_message="Failed to load donations",
    )
    items = backend.unwrap(body) or []
    has_more = bool((body.get("pagination") or {}).get("hasMore"))
    return items, has_more
