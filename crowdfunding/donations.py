from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

MIN_DONATION = 50
MAX_DONATION = 500000
GATEWAY_MIN_DONATION = 10

MIN_PLATFORM_FEE = 0
MAX_PLATFORM_FEE = 100
PLATFORM_FEE_STEP = Decimal("0.5")

PRESET_AMOUNTS = [1000, 2000, 5000, 10000]
QUICK_PRESET_AMOUNTS = [100, 500, 1000, 2500]

FAILED_PAYMENT_STATUSES = ("User canceled", "Expired", "Failed")


def default_platform_fee():
    return Decimal(str(getattr(settings, "DEFAULT_PLATFORM_FEE", 13)))


@dataclass(frozen=True)
class DonationSummary:
    base_donation: Decimal
    platform_fee_amount: Decimal
    total_amount: Decimal


def calculate_summary(amount, fee_percentage) -> DonationSummary:
    base = Decimal(str(amount or 0))
    fee = base * Decimal(str(fee_percentage or 0)) / 100
    return DonationSummary(base_donation=base, platform_fee_amount=fee, total_amount=base + fee)


def impact_description(amount) -> str:
    amount = Decimal(str(amount or 0))
    if amount >= 10000:
        return "Your generous donation can help rebuild homes for multiple families."
    if amount >= 5000:
        return "You could provide clean water access for an entire village."
    if amount >= 2000:
        return "You can supply educational materials for a classroom of students."
    if amount >= 1000:
        return "Your donation can provide meals for a family for a week."
    if amount > 0:
        return "Every little bit helps create positive change."
    return ""


def to_paisa(npr) -> int:
    """NPR -> paisa (1 NPR = 100 paisa), rounded half up."""
    return int((Decimal(str(npr)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_payment_payload(campaign_id, amount, fee_percentage, donor_name, donor_email,
                          message="", is_anonymous=False, user_id=None):
    summary = calculate_summary(amount, fee_percentage)
    payload = {
        "campaignId": campaign_id,
        "amount": to_paisa(summary.base_donation),
        "platformFee": to_paisa(summary.platform_fee_amount),
        "platformFeePercentage": float(fee_percentage),
        "totalAmount": to_paisa(summary.total_amount),
        "donorName": "Anonymous" if is_anonymous else donor_name,
        "donorEmail": donor_email,
        "donorMessage": message or "",
        "isAnonymous": bool(is_anonymous),
    }
    if user_id:
        payload["userId"] = user_id
    return payload


def split_top_donor(top_donor, recent):
    """Recent donations without the top donor's entry, so it is not listed twice."""
    recent = list(recent or [])
    if not top_donor:
        return recent
    top_id = top_donor.get("_id")
    return [d for d in recent if d.get("_id") != top_id]


def _first(data, *keys, default=None):
    for k in keys:
        v = data.get(k)
        if v not in (None, ""):
            return v
    return default


def is_creator_banned(campaign) -> bool:
    creator = campaign.get("creator") or {}
    return bool(campaign.get("creatorBanned") or creator.get("isBanned"))


def summarize_campaign(campaign):
    """
    Flatten the campaign payload into the numbers the detail page shows.
    The backend has used several key names over time; take the first present.
    """
    raised = _first(campaign, "amountRaised", "raisedAmount", "raised", "currentAmount", default=0)
    goal = _first(campaign, "targetAmount", "goalAmount", "goal", default=0)
    donors = _first(campaign, "donors", "donorsCount", "totalDonors", "supporters", default=0)

    progress = campaign.get("percentageRaised")
    if progress is None:
        progress = (float(raised) / float(goal) * 100) if goal else 0
    progress = min(float(progress), 100.0)

    return {
        "title": campaign.get("title") or "",
        "raised": raised,
        "goal": goal,
        "donors": donors,
        "progress": round(progress),
        "days_left": _first(campaign, "daysLeft", "remainingDays", default=0),
        "average_donation": round(float(raised) / float(donors)) if donors else 0,
        "image": _first(campaign, "coverImage", "image", "imageUrl", "photo", default=""),
        "category": campaign.get("category") or "",
        "story": _first(campaign, "story", "description", "shortDescription", default=""),
        "creator_banned": is_creator_banned(campaign),
    }
