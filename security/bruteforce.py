from functools import wraps
from flask import current_app, jsonify, make_response, request

from security.attempt_store import AttemptStoreError
from security.login_guard import DEFAULT_CLIENT_HEADERS, LoginAttemptGuard, derive_client_identifier
from utils.audit import log_event


def get_login_guard() -> LoginAttemptGuard:
    return current_app.extensions["login_guard"]


def client_identifier() -> str:
    trusted = current_app.config.get("TRUSTED_PROXY_HEADERS") or DEFAULT_CLIENT_HEADERS
    return derive_client_identifier(request.headers, trusted)


def _too_many(decision):
    resp = jsonify(
        error=decision.message or "Too many login attempts.",
        retry_after_seconds=decision.reset_in,
        blocked=decision.blocked,
    )
    resp.status_code = 429
    resp.headers["Retry-After"] = str(decision.reset_in)
    return resp


def _guard_unavailable(identifier: str):
    # Fail closed: without the limiter we cannot tell a brute force from a login
    current_app.logger.exception("Login rate limiter unavailable (client=%s)", identifier)
    return jsonify(error="Login temporarily unavailable. Try again later."), 503


def _annotate_failure(resp, decision):
    body = resp.get_json(silent=True)
    if not isinstance(body, dict):
        return
    body["remaining_attempts"] = decision.remaining
    if decision.message:
        body["warning"] = decision.message
    resp.set_data(current_app.json.dumps(body))


def login_rate_limited(view):
    """
    Usage:
        @auth_bp.post("/login")
        @login_rate_limited
        def login(): ...

    The view checks credentials and answers 401 on failure or 2xx on
    success; the guard is consulted before it runs and updated afterwards.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        guard = get_login_guard()
        identifier = client_identifier()

        try:
            decision = guard.check(identifier)
        except AttemptStoreError:
            return _guard_unavailable(identifier)

        if not decision.success:
            log_event("LOGIN_RATE_LIMITED", identifier=identifier, metadata=decision.to_dict())
            return _too_many(decision)

        resp = make_response(view(*args, **kwargs))

        try:
            if resp.status_code == 401:
                decision = guard.record_failure(identifier)
            elif 200 <= resp.status_code < 300:
                guard.clear(identifier)
                log_event("LOGIN_SUCCESS", identifier=identifier)
                return resp
            else:
                return resp
        except AttemptStoreError:
            return _guard_unavailable(identifier)

        if not decision.success:
            log_event("LOGIN_BLOCKED", identifier=identifier, metadata=decision.to_dict())
            return _too_many(decision)

        log_event(
            "LOGIN_FAIL",
            identifier=identifier,
            metadata={"remaining": decision.remaining, "reset_in": decision.reset_in},
        )
        _annotate_failure(resp, decision)
        return resp

    return wrapper
