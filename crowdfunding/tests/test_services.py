from unittest import mock

import pytest

from core.backend import BackendError
from crowdfunding import services


def envelope(**kw):
    return dict({"success": True}, **kw)


@pytest.fixture
def backend_returns(make_response):
    def _patch(body, status=200):
        return mock.patch("core.backend.requests.request", return_value=make_response(status, body))
    return _patch


class TestInitiate:
    def test_khalti(self, backend_returns):
        with backend_returns(envelope(data={"paymentUrl": "https://pay.khalti.com/x", "pidx": "p1"})) as req:
            data = services.initiate_khalti_payment({"amount": 100}, token="t")
        assert data["paymentUrl"] == "https://pay.khalti.com/x"
        assert req.call_args.args == ("POST", "http://backend.test/api/payments/khalti/initiate")

    def test_khalti_without_url(self, backend_returns):
        with backend_returns(envelope(data={"pidx": "p1"})):
            with pytest.raises(BackendError, match="Payment URL not received from server"):
                services.initiate_khalti_payment({})

    def test_esewa_requires_form_data(self, backend_returns):
        with backend_returns(envelope(data={"formUrl": "https://esewa.test/form"})):
            with pytest.raises(BackendError):
                services.initiate_esewa_payment({})

    def test_fonepay(self, backend_returns):
        body = envelope(data={"paymentId": "pay1", "qrCode": "abc", "webSocketUrl": "wss://x"})
        with backend_returns(body):
            assert services.initiate_fonepay_payment({})["paymentId"] == "pay1"


def test_fonepay_status_posts_payment_id(backend_returns):
    with backend_returns(envelope(data={"status": "Completed"})) as req:
        assert services.check_fonepay_status("pay1")["status"] == "Completed"
    assert req.call_args.args[0] == "POST"
    assert req.call_args.kwargs["json"] == {"paymentId": "pay1"}


def test_get_campaign_unwraps_campaign_key(backend_returns):
    with backend_returns(envelope(campaign={"_id": "c1", "title": "T"})):
        assert services.get_campaign("c1")["title"] == "T"


def test_get_campaign_empty_is_not_found(backend_returns):
    with backend_returns(envelope(campaign=None)):
        with pytest.raises(BackendError) as exc:
            services.get_campaign("c1")
    assert exc.value.status_code == 404


def test_related_campaigns_excludes_current(backend_returns):
    body = envelope(campaigns=[{"_id": "c1"}, {"_id": "c2"}, {"_id": "c3"}, {"_id": "c4"}])
    with backend_returns(body) as req:
        items = services.get_related_campaigns("c1", "Education")
    assert [c["_id"] for c in items] == ["c2", "c3", "c4"]
    params = req.call_args.kwargs["params"]
    assert params["category"] == "Education"
    assert params["exclude"] == "c1"


def test_related_campaigns_all_category_not_sent(backend_returns):
    with backend_returns(envelope(campaigns=[])) as req:
        services.get_related_campaigns("c1", "All Campaigns")
    assert "category" not in req.call_args.kwargs["params"]


def test_list_campaign_donations(backend_returns):
    body = envelope(data=[{"_id": "d1"}], pagination={"hasMore": True})
    with backend_returns(body) as req:
        items, has_more = services.list_campaign_donations("c1", page=2)
    assert items == [{"_id": "d1"}]
    assert has_more is True
    assert req.call_args.kwargs["params"] == {"page": 2, "limit": 10}


class TestPaymentHistory:
    def test_user_payments_unwrapped(self, backend_returns):
        with backend_returns(envelope(data=[{"_id": "pay1"}, {"_id": "pay2"}])) as req:
            payments = services.get_user_payments("donor-tok")
        assert [p["_id"] for p in payments] == ["pay1", "pay2"]
        assert req.call_args.args == ("GET", "http://backend.test/api/payments/user/payments")
        assert req.call_args.kwargs["headers"]["Authorization"] == "Bearer donor-tok"

    def test_campaign_payments_unwrapped(self, backend_returns):
        with backend_returns(envelope(data=[{"_id": "pay1"}])) as req:
            assert services.get_campaign_payments("c1", "tok") == [{"_id": "pay1"}]
        assert req.call_args.args == ("GET", "http://backend.test/api/payments/campaign/c1")

    def test_empty_data_is_empty_list(self, backend_returns):
        with backend_returns(envelope(data=None)):
            assert services.get_user_payments("tok") == []
