import base64
import json
import logging
from urllib.parse import urlencode

from django.contrib import messages
from django.http import Http404, HttpResponse, JsonResponse
from django.shortcuts import render, redirect
from django.urls import reverse
from django.utils.text import slugify
from django.views.decorators.http import require_GET, require_POST

from core.backend import BackendError
from . import services, sessions
from .donations import (
    GATEWAY_MIN_DONATION, FAILED_PAYMENT_STATUSES,
    build_payment_payload, calculate_summary, impact_description, split_top_donor, summarize_campaign,
)
from .fonepay import STATUS_COMPLETED, STATUS_FAILED
from .forms import DonationAmountForm, DonorDetailsForm
from .share_card import FORMATS, fetch_cover_image, render_card

logger = logging.getLogger(__name__)

DONATIONS_PAGE_SIZE = 10


def _with_query(url, **params):
    params = {k: v for k, v in params.items() if v not in (None, "")}
    return f"{url}?{urlencode(params)}" if params else url


def _success_url(payment_id):
    return _with_query(reverse("payment_success"), paymentId=payment_id)


def _cancel_url(payment_id, status=None):
    return _with_query(reverse("payment_cancel"), paymentId=payment_id, status=status)


def _payment_id(payment):
    return str(payment.get("paymentId") or payment.get("_id") or "")


def _not_found(request, message="Failed to load campaign details"):
    messages.error(request, message)
    return render(request, "crowdfunding/campaign_not_found.html", status=404)


def _donor_context(request):
    donor = sessions.current_donor(request.session)
    return donor, sessions.donor_token(request.session)


def _amount_form_for(request, campaign_id):
    draft = sessions.get_draft(request.session, campaign_id)
    if not draft:
        return DonationAmountForm()
    return DonationAmountForm(initial={
        "amount": "custom",
        "custom_amount": str(draft["amount"]),
        "platform_fee": draft["platform_fee"],
    })


def _donate_context(campaign_id, campaign, summary, step, **extra):
    ctx = {
        "campaign": campaign,
        "campaign_id": campaign_id,
        "info": summarize_campaign(campaign),
        "step": step,
        "summary": summary,
        "impact": impact_description(summary.base_donation) if summary else "",
    }
    ctx.update(extra)
    return ctx


@require_GET
def campaign_detail(request, campaign_id):
    try:
        campaign = services.get_campaign(campaign_id)
    except BackendError as e:
        logger.warning("Campaign %s could not be loaded: %s", campaign_id, e)
        return _not_found(request)

    info = summarize_campaign(campaign)

    related = []
    try:
        related = [
            dict(c, id=str(c.get("_id") or c.get("id")))
            for c in services.get_related_campaigns(campaign_id, info["category"])
        ]
    except BackendError as e:
        logger.info("Related campaigns for %s unavailable: %s", campaign_id, e)

    top_donor, recent = None, []
    try:
        top_donor = services.get_top_donor(campaign_id)
        recent = split_top_donor(top_donor, services.get_recent_donations(campaign_id))
    except BackendError as e:
        logger.info("Donations for %s unavailable: %s", campaign_id, e)

    return render(request, "crowdfunding/campaign_detail.html", {
        "campaign": campaign,
        "campaign_id": campaign_id,
        "info": info,
        "related": related,
        "top_donor": top_donor,
        "recent_donations": recent,
        "locked": info["creator_banned"],
        "step": 1,
        "amount_form": _amount_form_for(request, campaign_id),
    })


@require_POST
def donate(request, campaign_id):
    try:
        campaign = services.get_campaign(campaign_id)
    except BackendError as e:
        logger.warning("Campaign %s could not be loaded for donation: %s", campaign_id, e)
        return _not_found(request)

    if summarize_campaign(campaign)["creator_banned"]:
        messages.error(request, "Donations to this campaign are currently disabled.")
        return redirect("campaign_detail", campaign_id=campaign_id)

    donor, token = _donor_context(request)
    step = request.POST.get("step", "1")

    if step == "back":
        return render(request, "crowdfunding/donate.html", _donate_context(
            campaign_id, campaign, None, 1, amount_form=_amount_form_for(request, campaign_id),
        ))

    if step == "1":
        amount_form = DonationAmountForm(request.POST)
        if not amount_form.is_valid():
            return render(request, "crowdfunding/donate.html", _donate_context(
                campaign_id, campaign, None, 1, amount_form=amount_form,
            ))

        amount = amount_form.cleaned_data["donation_amount"]
        fee = amount_form.cleaned_data["platform_fee"]
        sessions.save_draft(request.session, campaign_id, amount, fee)
        return render(request, "crowdfunding/donate.html", _donate_context(
            campaign_id, campaign, calculate_summary(amount, fee), 2,
            details_form=DonorDetailsForm(donor=donor), fee_percentage=fee,
        ))

    draft = sessions.get_draft(request.session, campaign_id)
    if not draft:
        messages.error(request, "Please choose a donation amount first.")
        return render(request, "crowdfunding/donate.html", _donate_context(
            campaign_id, campaign, None, 1, amount_form=DonationAmountForm(),
        ))

    summary = calculate_summary(draft["amount"], draft["platform_fee"])
    details_form = DonorDetailsForm(request.POST, donor=donor)

    def step_two():
        return render(request, "crowdfunding/donate.html", _donate_context(
            campaign_id, campaign, summary, 2, details_form=details_form, fee_percentage=draft["platform_fee"],
        ))

    if not details_form.is_valid():
        return step_two()

    if summary.base_donation < GATEWAY_MIN_DONATION:
        messages.error(request, f"Minimum donation amount is Rs. {GATEWAY_MIN_DONATION}")
        return step_two()

    gateway = details_form.gateway
    if gateway == "card":
        messages.info(request, "Coming Soon: card payments will be available shortly.")
        return step_two()

    cd = details_form.cleaned_data
    payload = build_payment_payload(
        campaign_id,
        summary.base_donation,
        draft["platform_fee"],
        donor_name=(cd.get("name") or "").strip(),
        donor_email=cd["email"],
        message=cd.get("message") or "",
        is_anonymous=cd.get("is_anonymous"),
        user_id=(donor or {}).get("_id") or (donor or {}).get("id"),
    )

    try:
        if gateway == "khalti":
            data = services.initiate_khalti_payment(payload, token=token)
            sessions.clear_draft(request.session, campaign_id)
            return redirect(data["paymentUrl"])

        if gateway == "esewa":
            data = services.initiate_esewa_payment(payload, token=token)
            sessions.clear_draft(request.session, campaign_id)
            fields = [(k, "" if v is None else str(v)) for k, v in data["esewaFormData"].items()]
            return render(request, "crowdfunding/esewa_redirect.html", {
                "form_url": data["formUrl"],
                "fields": fields,
            })

        data = services.initiate_fonepay_payment(payload, token=token)
    except BackendError as e:
        logger.warning("%s payment for campaign %s failed to start: %s", gateway, campaign_id, e)
        messages.error(request, str(e))
        return step_two()

    sessions.remember_fonepay(request.session, data, campaign_id, token=token)
    sessions.clear_draft(request.session, campaign_id)
    return redirect("fonepay_payment", payment_id=data["paymentId"])


@require_GET
def campaign_donations(request, campaign_id):
    try:
        page = max(int(request.GET.get("page", 1)), 1)
    except ValueError:
        page = 1

    ctx = {"campaign_id": campaign_id, "page": page, "donations": [], "has_more": False, "top_donor": None}
    try:
        donations, has_more = services.list_campaign_donations(campaign_id, page=page, limit=DONATIONS_PAGE_SIZE)
        ctx.update(donations=donations, has_more=has_more, next_page=page + 1 if has_more else None)
        if page == 1:
            ctx["top_donor"] = services.get_top_donor(campaign_id)
    except BackendError as e:
        logger.warning("Donation list for %s (page %s) failed: %s", campaign_id, page, e)
        ctx["error"] = "Failed to load donations"

    return render(request, "crowdfunding/partials/donations_list.html", ctx)


@require_GET
def share_card(request, campaign_id):
    try:
        campaign = services.get_campaign(campaign_id)
    except BackendError as e:
        logger.warning("Share card for %s unavailable: %s", campaign_id, e)
        raise Http404("Campaign not found")

    fmt = request.GET.get("format", "square")
    if fmt not in FORMATS:
        fmt = "square"

    cover = fetch_cover_image(summarize_campaign(campaign)["image"])
    png = render_card(campaign, fmt, image=cover)

    slug = slugify(campaign.get("title") or "") or "campaign"
    resp = HttpResponse(png, content_type="image/png")
    resp["Content-Disposition"] = f'attachment; filename="{slug}-{fmt}.png"'
    return resp


# ---------- payment outcome pages ----------

def _payment_token(request, payment_id):
    token = sessions.donor_token(request.session)
    if token:
        return token
    return (sessions.get_fonepay(request.session, payment_id) or {}).get("token")


@require_GET
def payment_success(request):
    payment_id = request.GET.get("paymentId")
    pidx = request.GET.get("pidx")

    if not payment_id and not pidx:
        messages.error(request, "Payment ID or PIDX not found in URL")
        return render(request, "crowdfunding/payment_success.html", {"error": "Payment ID or PIDX not found in URL"})

    try:
        if payment_id:
            payment = services.get_payment(payment_id, token=_payment_token(request, payment_id))
        else:
            payment = services.verify_khalti_payment(pidx)
            verified_id = _payment_id(payment)
            # reloading the page must not verify twice
            if verified_id:
                return redirect(_success_url(verified_id))
    except BackendError as e:
        logger.warning("Payment %s could not be confirmed: %s", payment_id or pidx, e)
        messages.error(request, str(e))
        return render(request, "crowdfunding/payment_success.html", {"error": str(e)})

    if payment_id:
        sessions.forget_fonepay(request.session, payment_id)

    if payment.get("status") in FAILED_PAYMENT_STATUSES:
        return redirect(_cancel_url(_payment_id(payment) or payment_id, payment.get("status")))

    return render(request, "crowdfunding/payment_success.html", {"payment": payment})


@require_GET
def payment_cancel(request):
    payment_id = request.GET.get("paymentId")
    status = request.GET.get("status")
    payment = None

    if payment_id:
        token = _payment_token(request, payment_id)
        sessions.forget_fonepay(request.session, payment_id)
        try:
            payment = services.get_payment(payment_id, token=token)
        except BackendError as e:
            logger.info("Cancelled payment %s could not be loaded: %s", payment_id, e)

    return render(request, "crowdfunding/payment_cancel.html", {
        "payment": payment,
        "payment_id": payment_id,
        "status": (payment or {}).get("status") or status,
    })


@require_GET
def payment_error(request):
    message = request.GET.get("message") or "Something went wrong while processing your payment."
    return render(request, "crowdfunding/payment_error.html", {"message": message})


def _decode_esewa_data(encoded):
    try:
        decoded = json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (ValueError, TypeError) as e:
        logger.warning("Undecodable eSewa response: %s", e)
        return {}
    if not isinstance(decoded, dict):
        logger.warning("Unexpected eSewa response payload: %r", decoded)
        return {}
    return decoded


@require_GET
def esewa_verify(request):
    transaction_uuid = request.GET.get("transaction_uuid")
    payment_id = request.GET.get("paymentId")

    if request.GET.get("data"):
        decoded = _decode_esewa_data(request.GET["data"])
        transaction_uuid = transaction_uuid or decoded.get("transaction_uuid")

    if not transaction_uuid and not payment_id:
        messages.error(request, "Missing eSewa transaction details.")
        return redirect(_with_query(reverse("payment_error"), message="Missing eSewa transaction details."))

    try:
        result = services.verify_esewa_payment(transaction_uuid, payment_id=payment_id)
    except BackendError as e:
        logger.warning("eSewa verification for %s failed: %s", transaction_uuid or payment_id, e)
        return redirect(_with_query(reverse("payment_error"), message=str(e)))

    verified_id = _payment_id(result) or payment_id
    if result.get("status") == STATUS_COMPLETED:
        return redirect(_success_url(verified_id))
    return redirect(_cancel_url(verified_id, result.get("status") or STATUS_FAILED))


# ---------- Fonepay ----------

@require_GET
def fonepay_payment(request, payment_id):
    entry = sessions.get_fonepay(request.session, payment_id)
    if not entry:
        messages.error(request, "Payment session expired")
        return redirect("home")

    qr = entry.get("qrCode") or ""
    if qr and not qr.startswith("data:"):
        qr = f"data:image/png;base64,{qr}"

    return render(request, "crowdfunding/fonepay_payment.html", {
        "payment_id": payment_id,
        "qr_code": qr,
        "campaign_id": entry.get("campaignId"),
        "socket_path": f"/ws/payments/fonepay/{payment_id}/",
        "status_url": reverse("fonepay_status", kwargs={"payment_id": payment_id}),
        "steps": [
            "Open your banking app or Fonepay wallet",
            "Scan the QR code shown above",
            "Confirm the payment in your app",
        ],
    })


@require_GET
def fonepay_status(request, payment_id):
    entry = sessions.get_fonepay(request.session, payment_id)
    if not entry:
        return JsonResponse({"status": None, "redirect": reverse("home"), "error": "Payment session expired"}, status=404)

    try:
        result = services.check_fonepay_status(payment_id, token=entry.get("token"))
    except BackendError as e:
        logger.warning("Fonepay status poll for %s failed: %s", payment_id, e)
        return JsonResponse({"status": None, "redirect": None, "error": str(e)}, status=502)

    status = result.get("status")
    target = None
    if status == STATUS_COMPLETED:
        target = _success_url(payment_id)
    elif status == STATUS_FAILED:
        target = _cancel_url(payment_id, STATUS_FAILED)
    return JsonResponse({"status": status, "redirect": target})


@require_POST
def fonepay_cancel(request, payment_id):
    sessions.forget_fonepay(request.session, payment_id)
    return redirect(_cancel_url(payment_id, "User canceled"))
