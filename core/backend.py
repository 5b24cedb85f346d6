"""
Thin client for the NepalCrowdRise REST backend.

Every endpoint answers with the envelope {success, message, ...}; anything
that is not a successful envelope is raised as BackendError.
"""
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class BackendError(Exception):
    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self):
        return self.message


def api_url(path: str) -> str:
    return settings.BACKEND_API_URL.rstrip("/") + "/" + path.lstrip("/")


def _safe_json(resp):
    try:
        return resp.json()
    except ValueError:
        txt = (resp.text or "")[:600]
        raise BackendError(
            f"Non-JSON response. HTTP {resp.status_code}. Body: {txt}",
            status_code=resp.status_code,
        )


def request(method, path, token=None, params=None, payload=None, timeout=None, error_message=None):
    """
    Call the backend and return the decoded envelope.

    error_message is used when the backend fails without a message of its own.
    """
    url = api_url(path)
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    try:
        resp = requests.request(
            method,
            url,
            params=params,
            json=payload,
            headers=headers,
            timeout=timeout or getattr(settings, "BACKEND_TIMEOUT", 25),
        )
    except requests.RequestException as e:
        logger.warning("%s %s failed: %s", method, path, e)
        raise BackendError(error_message or "Could not reach the server. Please try again.") from e

    try:
        data = _safe_json(resp)
    except BackendError:
        logger.warning("%s %s returned non-JSON (HTTP %s)", method, path, resp.status_code)
        raise

    if resp.status_code >= 400 or not isinstance(data, dict) or data.get("success") is False:
        message = (data.get("message") if isinstance(data, dict) else None) or error_message or "Request failed"
        logger.warning("%s %s -> HTTP %s: %s", method, path, resp.status_code, message)
        raise BackendError(message, status_code=resp.status_code, payload=data)

    return data


def get(path, **kwargs):
    return request("GET", path, **kwargs)


def post(path, payload=None, **kwargs):
    return request("POST", path, payload=payload, **kwargs)


def unwrap(body, key="data"):
    return (body or {}).get(key)
