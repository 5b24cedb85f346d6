import logging
from functools import wraps

from django.contrib import messages
from django.shortcuts import redirect, render

from core.backend import BackendError
from . import services

logger = logging.getLogger(__name__)

EMPLOYEE_TOKEN_SESSION_KEY = "employee_token"
EMPLOYEE_LOGIN_SESSION_KEY = "employee_login"

# backend answers that mean the token itself is no longer valid
AUTH_FAILURE_STATUSES = (401, 403)


def clear_employee_session(session):
    session.pop(EMPLOYEE_TOKEN_SESSION_KEY, None)
    session.pop(EMPLOYEE_LOGIN_SESSION_KEY, None)


def employee_required(department=None):
    def decorator(view_func):
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            token = request.session.get(EMPLOYEE_TOKEN_SESSION_KEY)
            if not token:
                return redirect("employee_login")

            try:
                profile = services.get_profile(token)
            except BackendError as e:
                if e.status_code not in AUTH_FAILURE_STATUSES:
                    logger.warning("Employee profile check failed: %s", e)
                    return render(request, "review/unavailable.html", {"error": str(e)}, status=503)

                logger.info("Employee session rejected by backend: %s", e)
                clear_employee_session(request.session)
                messages.error(request, "Your session has expired. Please sign in again.")
                return redirect("employee_login")

            if department and profile.get("department") != department:
                messages.error(request, "You do not have access to this department.")
                return redirect("employee_portal")

            request.employee = profile
            request.employee_token = token
            return view_func(request, *args, **kwargs)
        return _wrapped
    return decorator
