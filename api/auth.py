"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/logout-all
- GET  /auth/me
- POST /auth/password-reset/request
- POST /auth/password-reset/confirm

Tokens travel as HttpOnly, SameSite=Lax cookies scoped to "/". The access
cookie lives as long as the access token (10 minutes), the refresh cookie as
long as the refresh token (7 days). Bodies only ever carry the public user view.
"""
from __future__ import annotations

from flask import Blueprint, Response, current_app, g, jsonify, make_response, request

from models.schemas.user import (
    LoginSchema,
    PasswordResetConfirmSchema,
    PasswordResetRequestSchema,
    RegisterSchema,
)
from services.auth_service import SessionResult
from utils.decorators import ACCESS_COOKIE, session_required

REFRESH_COOKIE = "refresh_token"

bp = Blueprint("auth", __name__, url_prefix="/auth")

register_schema = RegisterSchema()
login_schema = LoginSchema()
reset_request_schema = PasswordResetRequestSchema()
reset_confirm_schema = PasswordResetConfirmSchema()


def _auth():
    return current_app.extensions["auth"]


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": current_app.config["SESSION_COOKIE_SECURE"],
        "samesite": current_app.config["SESSION_COOKIE_SAMESITE"],
        "path": "/",
    }


def set_session_cookies(resp: Response, result: SessionResult) -> Response:
    opts = _cookie_options()
    access_age = int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds())
    refresh_age = int(current_app.config["REFRESH_TOKEN_EXPIRES"].total_seconds())
    resp.set_cookie(ACCESS_COOKIE, result.access_token, max_age=access_age, **opts)
    resp.set_cookie(REFRESH_COOKIE, result.refresh_token, max_age=refresh_age, **opts)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def clear_session_cookies(resp: Response) -> Response:
    opts = _cookie_options()
    resp.delete_cookie(ACCESS_COOKIE, **opts)
    resp.delete_cookie(REFRESH_COOKIE, **opts)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _presented_refresh_token() -> str | None:
    token = request.cookies.get(REFRESH_COOKIE)
    if token:
        return token
    body = _json_body()
    token = body.get("refresh_token") if isinstance(body, dict) else None
    return token if isinstance(token, str) else None


@bp.post("/register")
def register():
    """
    Register a new user and start a session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password]
          properties:
            email: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created; access_token and refresh_token cookies set
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    data = register_schema.load(_json_body())
    result = _auth().service.register(data["email"], data["password"])
    resp = jsonify({"user": result.user})
    resp.status_code = 201
    return set_session_cookies(resp, result)


@bp.post("/login")
def login():
    """
    Login with email and password.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK; access_token and refresh_token cookies set
      401:
        description: Invalid credentials
      422:
        description: Validation error
    """
    data = login_schema.load(_json_body())
    result = _auth().service.login(data["email"], data["password"])
    return set_session_cookies(jsonify({"user": result.user}), result)


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh token and issue a new access token.
    The refresh token is read from the refresh_token cookie, or from the
    JSON body field "refresh_token" for non-browser clients.
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK; both cookies replaced
      401:
        description: Unauthorized (missing, invalid, expired, revoked or reused token)
    """
    result = _auth().service.refresh(_presented_refresh_token())
    return set_session_cookies(jsonify({"user": result.user}), result)


@bp.post("/logout")
def logout():
    """
    Logout: revoke the presented refresh token and clear both cookies.
    Always succeeds.
    ---
    tags:
      - Auth
    responses:
      204:
        description: Session cookies cleared
    """
    _auth().service.logout(_presented_refresh_token())
    return clear_session_cookies(make_response("", 204))


@bp.post("/logout-all")
@session_required()
def logout_all():
    """
    Revoke every refresh token of the current user (all devices).
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      204:
        description: All sessions revoked; cookies cleared
      401:
        description: Unauthorized
    """
    _auth().service.logout_all(g.user_id)
    return clear_session_cookies(make_response("", 204))


@bp.get("/me")
@session_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: User no longer exists
    """
    resp = jsonify({"user": _auth().service.current_user(g.user_id)})
    resp.headers["Cache-Control"] = "no-store"
    return resp


@bp.post("/password-reset/request")
def password_reset_request():
    """
    Start a password reset. Answers 202 whether or not the email is registered.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email]
           properties:
             email: { type: string }
    responses:
      202:
        description: Accepted
      422:
        description: Validation error
    """
    data = reset_request_schema.load(_json_body())
    _auth().resets.request_reset(data["email"])
    return jsonify({"message": "If the email is registered, a reset link has been sent."}), 202


@bp.post("/password-reset/confirm")
def password_reset_confirm():
    """
    Finish a password reset with the emailed token. Revokes all sessions.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [token, password]
           properties:
             token: { type: string }
             password: { type: string }
    responses:
      204:
        description: Password changed
      400:
        description: Invalid or expired reset token
      422:
        description: Validation error
    """
    data = reset_confirm_schema.load(_json_body())
    _auth().resets.confirm_reset(data["token"], data["password"])
    return clear_session_cookies(make_response("", 204))
