"""
SessionClient: a small requests-based client for the auth API.

Session cookies live in the requests.Session cookie jar. When a protected
call answers 401 the client refreshes once and retries once. Concurrent
callers that hit 401 at the same time share a single /auth/refresh call
through SingleFlight, so one rotation serves all of them instead of each
thread presenting the same (by then revoked) refresh token.
"""
from __future__ import annotations

import logging
from typing import Any

import requests

from client.single_flight import SingleFlight

logger = logging.getLogger("session_auth.client")

_NO_RETRY_PATHS = frozenset({"/auth/login", "/auth/register", "/auth/refresh", "/auth/logout"})


class ApiError(Exception):
    def __init__(self, status: int, code: str, message: str):
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message

    @classmethod
    def from_response(cls, resp: requests.Response) -> "ApiError":
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return cls(
            resp.status_code,
            body.get("error", "HTTP_ERROR"),
            body.get("message") or resp.reason or "Unexpected error",
        )


class SessionExpired(ApiError):
    """The refresh token was rejected; the user has to log in again."""


class SessionClient:
    def __init__(self, base_url: str, session: requests.Session | None = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.timeout = timeout
        self._flight = SingleFlight()

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method, f"{self.base_url}{path}", **kwargs)

    @staticmethod
    def _checked(resp: requests.Response) -> requests.Response:
        if resp.status_code >= 400:
            raise ApiError.from_response(resp)
        return resp

    def register(self, email: str, password: str) -> dict:
        resp = self._send("POST", "/auth/register", json={"email": email, "password": password})
        return self._checked(resp).json()["user"]

    def login(self, email: str, password: str) -> dict:
        resp = self._send("POST", "/auth/login", json={"email": email, "password": password})
        return self._checked(resp).json()["user"]

    def logout(self) -> None:
        self._checked(self._send("POST", "/auth/logout"))

    def refresh(self) -> dict:
        """Rotate the session. Concurrent callers share one underlying request."""
        return self._flight.do("refresh", self._refresh_once)

    def _refresh_once(self) -> dict:
        resp = self._send("POST", "/auth/refresh")
        if resp.status_code == 401:
            err = ApiError.from_response(resp)
            raise SessionExpired(err.status, err.code, err.message)
        return self._checked(resp).json()["user"]

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Call a protected endpoint, refreshing the session once on 401."""
        resp = self._send(method, path, **kwargs)
        if resp.status_code == 401 and path.split("?", 1)[0] not in _NO_RETRY_PATHS:
            logger.debug("401 on %s %s; refreshing session", method, path)
            self.refresh()
            resp = self._send(method, path, **kwargs)
        return self._checked(resp)

    def me(self) -> dict:
        return self.request("GET", "/auth/me").json()["user"]
