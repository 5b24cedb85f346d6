import base64
import json
from unittest import mock

import pytest
from django.contrib.messages import get_messages
from django.urls import reverse

from core.backend import BackendError
from crowdfunding.sessions import DRAFT_SESSION_KEY, FONEPAY_SESSION_KEY


def message_texts(response):
    return [str(m) for m in get_messages(response.wsgi_request)]


@pytest.fixture
def campaign_api(campaign):
    with mock.patch("crowdfunding.services.get_campaign", return_value=campaign) as get_campaign, \
            mock.patch("crowdfunding.services.get_related_campaigns", return_value=[{"_id": "c2", "title": "Other"}]), \
            mock.patch("crowdfunding.services.get_top_donor", return_value={"_id": "d1", "donorName": "Hari", "amount": 5000}), \
            mock.patch("crowdfunding.services.get_recent_donations", return_value=[
                {"_id": "d1", "donorName": "Hari", "amount": 5000},
                {"_id": "d2", "donorName": "Gita", "amount": 500},
            ]):
        yield get_campaign


@pytest.fixture
def draft(seed_session):
    return seed_session(**{DRAFT_SESSION_KEY: {"c1": {"amount": 1000, "platform_fee": "13"}}})


def donor_post(**kw):
    data = {
        "step": "2",
        "name": "Sita",
        "email": "sita@example.com",
        "payment_method": "mobileBanking",
        "mobile_payment_method": "khalti",
    }
    data.update(kw)
    return data


class TestCampaignDetail:
    def test_renders_campaign_and_donors(self, client, campaign_api):
        response = client.get(reverse("campaign_detail", args=["c1"]))
        assert response.status_code == 200
        assert response.context["info"]["progress"] == 25
        assert [d["_id"] for d in response.context["recent_donations"]] == ["d2"]
        assert response.context["related"][0]["id"] == "c2"
        assert not response.context["locked"]
        assert b"Choose an amount" in response.content

    def test_missing_campaign(self, client):
        with mock.patch("crowdfunding.services.get_campaign", side_effect=BackendError("Campaign not found", 404)):
            response = client.get(reverse("campaign_detail", args=["nope"]))
        assert response.status_code == 404
        assert "Failed to load campaign details" in message_texts(response)

    def test_related_failure_is_not_fatal(self, client, campaign_api):
        with mock.patch("crowdfunding.services.get_related_campaigns", side_effect=BackendError("x")):
            response = client.get(reverse("campaign_detail", args=["c1"]))
        assert response.status_code == 200
        assert response.context["related"] == []

    def test_banned_creator_locks_form(self, client, campaign_api, campaign):
        campaign["creator"]["isBanned"] = True
        response = client.get(reverse("campaign_detail", args=["c1"]))
        assert response.context["locked"]
        assert b"Choose an amount" not in response.content


class TestDonateSteps:
    def test_step_one_saves_draft(self, client, campaign_api):
        response = client.post(reverse("donate", args=["c1"]), {"step": "1", "amount": "1000", "platform_fee": "13"})
        assert response.status_code == 200
        assert response.context["step"] == 2
        assert str(response.context["summary"].total_amount) == "1130"
        assert client.session[DRAFT_SESSION_KEY]["c1"] == {"amount": 1000, "platform_fee": "13"}

    def test_step_one_invalid_amount(self, client, campaign_api):
        response = client.post(reverse("donate", args=["c1"]), {"step": "1", "custom_amount": "10", "platform_fee": "13"})
        assert response.context["step"] == 1
        assert DRAFT_SESSION_KEY not in client.session

    def test_back_keeps_amount(self, client, campaign_api, draft):
        response = client.post(reverse("donate", args=["c1"]), {"step": "back"})
        assert response.context["step"] == 1
        assert response.context["amount_form"].initial["custom_amount"] == "1000"

    def test_step_two_without_draft(self, client, campaign_api):
        response = client.post(reverse("donate", args=["c1"]), donor_post())
        assert response.context["step"] == 1

    def test_banned_creator_refused(self, client, campaign_api, campaign, draft):
        campaign["creatorBanned"] = True
        with mock.patch("crowdfunding.services.initiate_khalti_payment") as initiate:
            response = client.post(reverse("donate", args=["c1"]), donor_post())
        assert response.status_code == 302
        initiate.assert_not_called()

    def test_card_is_coming_soon(self, client, campaign_api, draft):
        response = client.post(reverse("donate", args=["c1"]), donor_post(payment_method="card"))
        assert response.context["step"] == 2
        assert any("Coming Soon" in m for m in message_texts(response))

    def test_invalid_details_stay_on_step_two(self, client, campaign_api, draft):
        response = client.post(reverse("donate", args=["c1"]), donor_post(email=""))
        assert response.context["step"] == 2
        assert "email" in response.context["details_form"].errors


class TestGatewayDispatch:
    def test_khalti_redirects_to_payment_url(self, client, campaign_api, draft):
        with mock.patch("crowdfunding.services.initiate_khalti_payment",
                        return_value={"paymentUrl": "https://pay.khalti.com/abc"}) as initiate:
            response = client.post(reverse("donate", args=["c1"]), donor_post())

        assert response.status_code == 302
        assert response["Location"] == "https://pay.khalti.com/abc"
        payload = initiate.call_args.args[0]
        assert payload["amount"] == 100000
        assert payload["totalAmount"] == 113000
        assert payload["donorName"] == "Sita"
        assert "c1" not in client.session.get(DRAFT_SESSION_KEY, {})

    def test_esewa_renders_auto_submit_form(self, client, campaign_api, draft):
        data = {"formUrl": "https://rc-epay.esewa.com.np/form", "esewaFormData": {"total_amount": 1130, "signature": "sig"}}
        with mock.patch("crowdfunding.services.initiate_esewa_payment", return_value=data):
            response = client.post(reverse("donate", args=["c1"]), donor_post(mobile_payment_method="esewa"))

        assert response.status_code == 200
        assert response.context["form_url"] == data["formUrl"]
        assert ("total_amount", "1130") in response.context["fields"]
        assert b'action="https://rc-epay.esewa.com.np/form"' in response.content

    def test_fonepay_stores_session_and_redirects(self, client, campaign_api, draft):
        data = {"paymentId": "pay1", "qrCode": "abc", "webSocketUrl": "wss://gw", "deviceId": "d"}
        with mock.patch("crowdfunding.services.initiate_fonepay_payment", return_value=data):
            response = client.post(reverse("donate", args=["c1"]), donor_post(mobile_payment_method="fonepay"))

        assert response.status_code == 302
        assert response["Location"] == reverse("fonepay_payment", args=["pay1"])
        assert client.session[FONEPAY_SESSION_KEY]["pay1"]["webSocketUrl"] == "wss://gw"

    def test_backend_error_keeps_input(self, client, campaign_api, draft):
        with mock.patch("crowdfunding.services.initiate_khalti_payment",
                        side_effect=BackendError("Payment initialization failed")):
            response = client.post(reverse("donate", args=["c1"]), donor_post(message="Keep going"))

        assert response.context["step"] == 2
        assert response.context["details_form"]["message"].value() == "Keep going"
        assert "Payment initialization failed" in message_texts(response)
        assert "c1" in client.session[DRAFT_SESSION_KEY]


class TestDonationsFragment:
    def test_first_page_has_top_donor(self, client):
        with mock.patch("crowdfunding.services.list_campaign_donations", return_value=([{"_id": "d2"}], True)) as lst, \
                mock.patch("crowdfunding.services.get_top_donor", return_value={"donorName": "Hari"}):
            response = client.get(reverse("campaign_donations", args=["c1"]))
        assert response.context["top_donor"] == {"donorName": "Hari"}
        assert response.context["next_page"] == 2
        assert lst.call_args.kwargs == {"page": 1, "limit": 10}

    def test_later_page(self, client):
        with mock.patch("crowdfunding.services.list_campaign_donations", return_value=([], False)), \
                mock.patch("crowdfunding.services.get_top_donor") as top:
            response = client.get(reverse("campaign_donations", args=["c1"]), {"page": "3"})
        top.assert_not_called()
        assert response.context["has_more"] is False

    def test_error(self, client):
        with mock.patch("crowdfunding.services.list_campaign_donations", side_effect=BackendError("x")):
            response = client.get(reverse("campaign_donations", args=["c1"]))
        assert b"Failed to load donations" in response.content


class TestPaymentSuccess:
    def test_with_payment_id(self, client):
        payment = {"_id": "pay1", "status": "Completed", "amount": 100000, "totalAmount": 113000}
        with mock.patch("crowdfunding.services.get_payment", return_value=payment):
            response = client.get(reverse("payment_success"), {"paymentId": "pay1"})
        assert response.status_code == 200
        assert b"Rs. 1,130" in response.content

    def test_khalti_pidx_is_verified_then_redirected(self, client):
        with mock.patch("crowdfunding.services.verify_khalti_payment",
                        return_value={"paymentId": "pay1", "status": "Completed"}) as verify:
            response = client.get(reverse("payment_success"), {"pidx": "px"})
        verify.assert_called_once_with("px")
        assert response.status_code == 302
        assert response["Location"] == reverse("payment_success") + "?paymentId=pay1"

    @pytest.mark.parametrize("status", ["User canceled", "Expired", "Failed"])
    def test_failed_statuses_go_to_cancel(self, client, status):
        with mock.patch("crowdfunding.services.get_payment", return_value={"_id": "pay1", "status": status}):
            response = client.get(reverse("payment_success"), {"paymentId": "pay1"})
        assert response.status_code == 302
        assert response["Location"].startswith(reverse("payment_cancel") + "?paymentId=pay1")

    def test_no_identifiers(self, client):
        response = client.get(reverse("payment_success"))
        assert "Payment ID or PIDX not found in URL" in message_texts(response)

    def test_clears_fonepay_session(self, client, fonepay_session):
        with mock.patch("crowdfunding.services.get_payment", return_value={"_id": "pay1", "status": "Completed"}):
            client.get(reverse("payment_success"), {"paymentId": "pay1"})
        assert "pay1" not in client.session[FONEPAY_SESSION_KEY]

    def test_sends_donor_token(self, client, seed_session, make_response):
        seed_session(token="donor-tok")
        body = {"success": True, "data": {"_id": "pay1", "status": "Completed", "amount": 100000, "totalAmount": 113000}}
        with mock.patch("core.backend.requests.request", return_value=make_response(200, body)) as req:
            response = client.get(reverse("payment_success"), {"paymentId": "pay1"})
        assert response.status_code == 200
        assert req.call_args.kwargs["headers"]["Authorization"] == "Bearer donor-tok"

    def test_falls_back_to_fonepay_token(self, client, seed_session, fonepay_entry):
        seed_session(**{FONEPAY_SESSION_KEY: {"pay1": dict(fonepay_entry, token="fp-tok")}})
        with mock.patch("crowdfunding.services.get_payment",
                        return_value={"_id": "pay1", "status": "Completed"}) as get_payment:
            client.get(reverse("payment_success"), {"paymentId": "pay1"})
        get_payment.assert_called_once_with("pay1", token="fp-tok")


def test_payment_cancel_falls_back_to_query_status(client):
    with mock.patch("crowdfunding.services.get_payment", side_effect=BackendError("x")):
        response = client.get(reverse("payment_cancel"), {"paymentId": "pay1", "status": "Expired"})
    assert response.status_code == 200
    assert response.context["status"] == "Expired"


def test_payment_cancel_sends_fonepay_token(client, seed_session, fonepay_entry):
    seed_session(**{FONEPAY_SESSION_KEY: {"pay1": dict(fonepay_entry, token="fp-tok")}})
    with mock.patch("crowdfunding.services.get_payment",
                    return_value={"_id": "pay1", "status": "User canceled"}) as get_payment:
        response = client.get(reverse("payment_cancel"), {"paymentId": "pay1"})
    get_payment.assert_called_once_with("pay1", token="fp-tok")
    assert response.context["status"] == "User canceled"
    assert "pay1" not in client.session[FONEPAY_SESSION_KEY]


def test_payment_error_shows_message(client):
    response = client.get(reverse("payment_error"), {"message": "Signature mismatch"})
    assert b"Signature mismatch" in response.content


class TestEsewaVerify:
    def test_base64_data(self, client):
        data = base64.b64encode(json.dumps({"transaction_uuid": "PN-1", "status": "COMPLETE"}).encode()).decode()
        with mock.patch("crowdfunding.services.verify_esewa_payment",
                        return_value={"paymentId": "pay1", "status": "Completed"}) as verify:
            response = client.get(reverse("esewa_verify"), {"data": data})
        verify.assert_called_once_with("PN-1", payment_id=None)
        assert response["Location"] == reverse("payment_success") + "?paymentId=pay1"

    def test_non_object_data_is_ignored(self, client):
        data = base64.b64encode(json.dumps([1, 2]).encode()).decode()
        with mock.patch("crowdfunding.services.verify_esewa_payment") as verify:
            response = client.get(reverse("esewa_verify"), {"data": data})
        verify.assert_not_called()
        assert response.status_code == 302
        assert response["Location"].startswith(reverse("payment_error"))

    def test_not_completed(self, client):
        with mock.patch("crowdfunding.services.verify_esewa_payment",
                        return_value={"paymentId": "pay1", "status": "Failed"}):
            response = client.get(reverse("esewa_verify"), {"paymentId": "pay1"})
        assert response["Location"].startswith(reverse("payment_cancel"))

    def test_backend_error(self, client):
        with mock.patch("crowdfunding.services.verify_esewa_payment", side_effect=BackendError("Payment verification failed")):
            response = client.get(reverse("esewa_verify"), {"transaction_uuid": "PN-1"})
        assert response["Location"].startswith(reverse("payment_error"))


class TestFonepay:
    def test_qr_page(self, client, fonepay_session):
        response = client.get(reverse("fonepay_payment", args=["pay1"]))
        assert response.status_code == 200
        assert response.context["qr_code"] == "data:image/png;base64,iVBORw0KGgo="
        assert response.context["socket_path"] == "/ws/payments/fonepay/pay1/"
        assert len(response.context["steps"]) == 3

    def test_expired_session(self, client):
        response = client.get(reverse("fonepay_payment", args=["pay1"]))
        assert response["Location"] == reverse("home")
        assert "Payment session expired" in message_texts(response)

    @pytest.mark.parametrize("status, target", [
        ("Completed", "payment_success"),
        ("Failed", "payment_cancel"),
    ])
    def test_status_terminal(self, client, fonepay_session, status, target):
        with mock.patch("crowdfunding.services.check_fonepay_status", return_value={"status": status}):
            data = client.get(reverse("fonepay_status", args=["pay1"])).json()
        assert data["status"] == status
        assert data["redirect"].startswith(reverse(target))

    def test_status_pending(self, client, fonepay_session):
        with mock.patch("crowdfunding.services.check_fonepay_status", return_value={"status": "Pending"}):
            data = client.get(reverse("fonepay_status", args=["pay1"])).json()
        assert data == {"status": "Pending", "redirect": None}

    def test_status_without_session(self, client):
        assert client.get(reverse("fonepay_status", args=["pay1"])).status_code == 404

    def test_cancel(self, client, fonepay_session):
        response = client.post(reverse("fonepay_cancel", args=["pay1"]))
        assert response["Location"].startswith(reverse("payment_cancel") + "?paymentId=pay1")
        assert "pay1" not in client.session[FONEPAY_SESSION_KEY]


def test_share_card_png(client, campaign):
    with mock.patch("crowdfunding.services.get_campaign", return_value=campaign), \
            mock.patch("crowdfunding.views.fetch_cover_image", return_value=None):
        response = client.get(reverse("share_card", args=["c1"]), {"format": "story"})
    assert response["Content-Type"] == "image/png"
    assert response["Content-Disposition"] == 'attachment; filename="help-sita-rebuild-her-school-story.png"'
    assert response.content[:8] == b"\x89PNG\r\n\x1a\n"
