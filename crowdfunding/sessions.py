"""Per-visitor state kept in the Django session (nothing here is persisted elsewhere)."""

DRAFT_SESSION_KEY = "donation_drafts"
FONEPAY_SESSION_KEY = "fonepay_payments"

# set by the donor sign-in flow of the main site
DONOR_SESSION_KEY = "user"
DONOR_TOKEN_SESSION_KEY = "token"


def get_draft(session, campaign_id):
    return (session.get(DRAFT_SESSION_KEY) or {}).get(str(campaign_id))


def save_draft(session, campaign_id, amount, platform_fee):
    drafts = dict(session.get(DRAFT_SESSION_KEY) or {})
    drafts[str(campaign_id)] = {"amount": int(amount), "platform_fee": str(platform_fee)}
    session[DRAFT_SESSION_KEY] = drafts


def clear_draft(session, campaign_id):
    drafts = dict(session.get(DRAFT_SESSION_KEY) or {})
    if drafts.pop(str(campaign_id), None) is not None:
        session[DRAFT_SESSION_KEY] = drafts


def remember_fonepay(session, data, campaign_id, token=None):
    payments = dict(session.get(FONEPAY_SESSION_KEY) or {})
    payments[str(data["paymentId"])] = {
        "campaignId": str(campaign_id),
        "qrCode": data.get("qrCode", ""),
        "webSocketUrl": data.get("webSocketUrl", ""),
        "deviceId": data.get("deviceId", ""),
        "token": token,
    }
    session[FONEPAY_SESSION_KEY] = payments


def get_fonepay(session, payment_id):
    return (session.get(FONEPAY_SESSION_KEY) or {}).get(str(payment_id))


def forget_fonepay(session, payment_id):
    payments = dict(session.get(FONEPAY_SESSION_KEY) or {})
    if payments.pop(str(payment_id), None) is not None:
        session[FONEPAY_SESSION_KEY] = payments


def current_donor(session):
    return session.get(DONOR_SESSION_KEY) or None


def donor_token(session):
    return session.get(DONOR_TOKEN_SESSION_KEY) or None
