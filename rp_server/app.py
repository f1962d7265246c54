"""Flask application exposing U2F relying-party endpoints."""

from __future__ import annotations

import json
import logging
import secrets

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import ValidationError

from u2fserver import Mode, U2FError, start
from u2fserver.logs import EventLogger

from .challenges import ChallengeCache
from .config import RPSettings
from .database import Database
from .models import Device
from .schemas import (
    AuthenticateChallengeRequest,
    RegisterChallengeRequest,
    RPResponse,
    VerifyRequest,
)
from .services import (
    ensure_user,
    get_user,
    record_assertion,
    select_device,
    store_device,
)

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {
    "register": "Register",
    "authn": "Authenticate",
}

EVENT_LABELS = {
    ("register", "challenge.start"): "Creating Registration Challenge",
    ("register", "challenge.success"): "Issued Registration Challenge",
    ("register", "verify.start"): "Verifying Registration",
    ("register", "verify.expired"): "Registration Challenge Expired",
    ("register", "verify.success"): "Registration Completed",
    ("authn", "challenge.start"): "Creating Authentication Challenge",
    ("authn", "challenge.unknown_user"): "Authentication Unknown User",
    ("authn", "challenge.success"): "Issued Authentication Challenge",
    ("authn", "verify.start"): "Verifying Authentication",
    ("authn", "verify.expired"): "Authentication Challenge Expired",
    ("authn", "verify.success"): "Authentication Completed",
}


_log = EventLogger(LOGGER, "RP Server", STAGE_LABELS, EVENT_LABELS)


def _failure(message: str, status: int = 400, **data: object):
    body = RPResponse(success=False, message=message, data=data or None)
    return jsonify(body.model_dump()), status


def create_app(settings: RPSettings | None = None) -> Flask:
    settings = settings or RPSettings()
    db = Database(settings)
    db.create_all()
    u2f = start(Mode.DEBUG if settings.debug else Mode.PRODUCTION, settings.u2f)
    challenge_cache = ChallengeCache(settings.challenge_ttl)

    app = Flask(__name__)
    CORS(app)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    app.extensions["u2f_server"] = u2f
    app.extensions["u2f_challenges"] = challenge_cache

    @app.post("/register/challenge")
    def register_challenge():
        payload = RegisterChallengeRequest.model_validate(request.get_json() or {})
        req_id = secrets.token_hex(4)
        _log("register", "challenge.start", req_id, user=payload.username)
        ctx = u2f.open()
        try:
            register_request = ctx.registration_challenge(settings.origin, settings.app_id)
        except U2FError:
            ctx.close()
            raise
        challenge_cache.issue("register", payload.username, ctx)
        _log("register", "challenge.success", req_id, user=payload.username)
        return jsonify(RPResponse(success=True, data=json.loads(register_request)).model_dump())

    @app.post("/register/verify")
    def register_verify():
        payload = VerifyRequest.model_validate(request.get_json() or {})
        req_id = secrets.token_hex(4)
        _log("register", "verify.start", req_id, user=payload.username)
        pending = challenge_cache.pop("register", payload.username)
        if pending is None:
            _log("register", "verify.expired", req_id, user=payload.username, level=logging.WARNING)
            return _failure("Challenge expired")
        with pending.context as ctx:
            client = ctx.registration_verify(payload.response_text())
        with db.session() as session:
            user = ensure_user(session, payload.username)
            store_device(session, user, client)
            _log(
                "register",
                "verify.success",
                req_id,
                user=payload.username,
                handle=client.handle,
            )
        return jsonify(RPResponse(success=True, data=client.to_dict()).model_dump())

    @app.post("/authenticate/challenge")
    def authenticate_challenge():
        payload = AuthenticateChallengeRequest.model_validate(request.get_json() or {})
        req_id = secrets.token_hex(4)
        _log("authn", "challenge.start", req_id, user=payload.username)
        with db.session() as session:
            user = get_user(session, payload.username)
            if not user:
                _log(
                    "authn",
                    "challenge.unknown_user",
                    req_id,
                    user=payload.username,
                    level=logging.WARNING,
                )
                return _failure("Unknown user")
            device = select_device(session, user, payload.handle)
            client = device.to_client()
            device_id = device.id
        ctx = u2f.open()
        try:
            sign_request = ctx.authentication_challenge(settings.origin, settings.app_id, client)
        except U2FError:
            ctx.close()
            raise
        challenge_cache.issue("authenticate", payload.username, ctx, device_id=device_id)
        _log("authn", "challenge.success", req_id, user=payload.username, handle=client.handle)
        return jsonify(RPResponse(success=True, data=json.loads(sign_request)).model_dump())

    @app.post("/authenticate/verify")
    def authenticate_verify():
        payload = VerifyRequest.model_validate(request.get_json() or {})
        req_id = secrets.token_hex(4)
        _log("authn", "verify.start", req_id, user=payload.username)
        pending = challenge_cache.pop("authenticate", payload.username)
        if pending is None:
            _log("authn", "verify.expired", req_id, user=payload.username, level=logging.WARNING)
            return _failure("Challenge expired")
        with pending.context as ctx:
            assertion = ctx.authentication_verify(payload.response_text())
        with db.session() as session:
            device = session.get(Device, pending.device_id)
            if device is None:
                return _failure("No registered device")
            record_assertion(device, assertion)
            _log(
                "authn",
                "verify.success",
                req_id,
                user=payload.username,
                handle=device.handle,
                counter=assertion.counter,
                user_present=assertion.user_present,
            )
        return jsonify(
            RPResponse(
                success=True,
                data={"counter": assertion.counter, "user_present": assertion.user_present},
            ).model_dump()
        )

    @app.errorhandler(U2FError)
    def handle_u2f_error(error: U2FError):
        return _failure(str(error), error=error.kind.name)

    @app.errorhandler(ValidationError)
    def handle_invalid_request(error: ValidationError):
        return _failure("Invalid request payload")

    @app.errorhandler(400)
    def handle_bad_request(error):
        message = getattr(error, "description", "Bad Request")
        return _failure(message)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
