from unittest import mock

import pytest

from crowdfunding.sessions import FONEPAY_SESSION_KEY
from review.permissions import EMPLOYEE_TOKEN_SESSION_KEY


@pytest.fixture(autouse=True)
def _locmem_backend(settings):
    settings.BACKEND_API_URL = "http://backend.test"
    settings.CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}


@pytest.fixture
def seed_session(client):
    def _seed(**values):
        session = client.session
        for k, v in values.items():
            session[k] = v
        session.save()
        return session
    return _seed


@pytest.fixture
def campaign():
    return {
        "_id": "c1",
        "title": "Help Sita rebuild her school",
        "story": "The earthquake destroyed the only school in the village. Help us rebuild it.",
        "category": "Education",
        "amountRaised": 25000,
        "targetAmount": 100000,
        "donors": 10,
        "daysLeft": 12,
        "coverImage": "",
        "creator": {"name": "Sita", "isBanned": False},
    }


@pytest.fixture
def fonepay_entry():
    return {
        "campaignId": "c1",
        "qrCode": "iVBORw0KGgo=",
        "webSocketUrl": "wss://gateway.test/ws",
        "deviceId": "dev-1",
        "token": None,
    }


@pytest.fixture
def fonepay_session(seed_session, fonepay_entry):
    return seed_session(**{FONEPAY_SESSION_KEY: {"pay1": fonepay_entry}})


@pytest.fixture
def employee(seed_session):
    seed_session(**{EMPLOYEE_TOKEN_SESSION_KEY: "emp-token"})
    profile = {"name": "Ram", "designationNumber": "WD001", "department": "WITHDRAWAL_DEPARTMENT"}
    with mock.patch("review.services.get_profile", return_value=profile) as m:
        yield m


@pytest.fixture
def make_response():
    def _make(status=200, body=None, text=None):
        resp = mock.Mock()
        resp.status_code = status
        if body is None:
            resp.json.side_effect = ValueError("no json")
            resp.text = text or ""
        else:
            resp.json.return_value = body
            resp.text = ""
        return resp
    return _make
