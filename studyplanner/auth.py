"""
Authentication against the hosted auth provider (Supabase GoTrue, /auth/v1).

Sessions live in memory; with remember_me=True they are also kept in the
local store under the `session` key so the next start is already signed in.
Protected views call require_user(), which raises AuthRequiredError when
nobody is signed in.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from studyplanner.config import config
from studyplanner.errors import AuthError, AuthRequiredError, ValidationError
from studyplanner.storage import CollectionStore

logger = logging.getLogger(__name__)

REMEMBER_ME_SECONDS = 30 * 24 * 60 * 60


class AuthClient:
    SESSION_KEY = "session"

    def __init__(
        self,
        url: str,
        api_key: str,
        store: Optional[CollectionStore] = None,
        http: Optional[requests.Session] = None,
        timeout: float | None = None,
    ) -> None:
        if not url or not api_key:
            raise AuthError("Auth provider is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
        self.base_url = url.rstrip("/")
        self.api_key = api_key
        self.store = store
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT

        self._session: Dict[str, Any] = store.read(self.SESSION_KEY, {}) if store is not None else {}

    @classmethod
    def from_config(cls, store: Optional[CollectionStore] = None) -> "AuthClient":
        return cls(config.SUPABASE_URL or "", config.SUPABASE_ANON_KEY or "", store)

    @property
    def access_token(self) -> Optional[str]:
        return self._session.get("access_token")

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        authorized: bool = False,
    ) -> Dict[str, Any]:
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        if authorized:
            if not self.access_token:
                raise AuthRequiredError("Not signed in")
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            resp = self.http.request(
                method,
                f"{self.base_url}/auth/v1/{path}",
                json=payload,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Auth request failed: {e}") from e

        if resp.status_code in (401, 403) and authorized:
            self._set_session({})
            raise AuthRequiredError("Session expired, please sign in again")
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("msg") or body.get("error_description") or body.get("message") or resp.text
            except ValueError:
                detail = resp.text
            raise AuthError(detail)

        if not resp.content:
            return {}
        return resp.json()

    def _set_session(self, session: Dict[str, Any], remember: bool = False) -> None:
        # only remembered sessions reach the disk; anything else clears it
        self._session = session
        if self.store is not None:
            self.store.write(self.SESSION_KEY, session if remember else {})

    @staticmethod
    def _require(**fields: str) -> None:
        missing = [name for name, value in fields.items() if not (value or "").strip()]
        if missing:
            raise ValidationError(f"Required: {', '.join(missing)}")

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str, name: str) -> Dict[str, Any]:
        self._require(email=email, password=password, name=name)
        return self._request("POST", "signup", {"email": email, "password": password, "data": {"name": name}})

    def sign_in(self, email: str, password: str, remember_me: bool = False) -> Dict[str, Any]:
        self._require(email=email, password=password)
        session = self._request(
            "POST", "token", {"email": email, "password": password}, params={"grant_type": "password"}
        )
        self._set_session(session, remember=remember_me)
        if remember_me:
            self._request("PUT", "user", {"data": {"session_expiry": REMEMBER_ME_SECONDS}}, authorized=True)
        logger.info("Signed in as %s", email)
        return session

    def sign_out(self) -> None:
        if self.access_token:
            try:
                self._request("POST", "logout", authorized=True)
            finally:
                self._set_session({})

    def reset_password(self, email: str, redirect_to: Optional[str] = None) -> None:
        self._require(email=email)
        self._request("POST", "recover", {"email": email}, params={"redirect_to": redirect_to or config.RESET_REDIRECT})

    def update_password(self, password: str) -> None:
        self._require(password=password)
        self._request("PUT", "user", {"password": password}, authorized=True)

    def update_profile(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", "user", {"data": data}, authorized=True)

    def get_current_user(self) -> Optional[Dict[str, Any]]:
        if not self.access_token:
            return None
        try:
            return self._request("GET", "user", authorized=True)
        except AuthRequiredError:
            return None

    def require_user(self) -> Dict[str, Any]:
        user = self.get_current_user()
        if user is None:
            raise AuthRequiredError("Please sign in first")
        return user
