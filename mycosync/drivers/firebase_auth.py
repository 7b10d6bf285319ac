from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

import httpx

from ..core.errors import AuthenticationFailed
from ..core.timeutil import now_utc
from ..domain.interfaces import AuthListener
from ..domain.models import Identity

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"


class FirebaseIdentityProvider:
    """Email/password sign-in against Firebase Authentication.

    Listeners hear every session change: sign-in, sign-out, and the expiry
    of the ID token (reported as ``None``).
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._listeners: list[AuthListener] = []
        self._current: Optional[Identity] = None
        self._expiry: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def id_token(self) -> Optional[str]:
        return self._current.id_token if self._current else None

    def add_listener(self, listener: AuthListener) -> None:
        self._listeners.append(listener)

    async def sign_in(self, email: str, password: str) -> Identity:
        if not self._api_key:
            raise AuthenticationFailed("identity provider not configured")
        try:
            resp = await self._client.post(
                SIGN_IN_URL,
                params={"key": self._api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
            )
        except httpx.HTTPError as e:
            raise AuthenticationFailed(f"identity provider unreachable: {e}") from e

        if resp.status_code != 200:
            try:
                code = resp.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                code = f"HTTP_{resp.status_code}"
            logger.warning("Sign-in rejected for %s: %s", email, code)
            raise AuthenticationFailed(code, code=code)

        data = resp.json()
        expires_in = float(data.get("expiresIn", 3600))
        identity = Identity(
            uid=data["localId"],
            email=data.get("email", email),
            id_token=data["idToken"],
            expires_at=now_utc() + timedelta(seconds=expires_in),
        )
        self._set(identity)
        self._arm_expiry(expires_in)
        return identity

    async def sign_out(self) -> None:
        if self._current is not None:
            self._set(None)

    def _arm_expiry(self, seconds: float) -> None:
        if self._expiry:
            self._expiry.cancel()
        self._expiry = asyncio.get_running_loop().call_later(seconds, self._expired)

    def _expired(self) -> None:
        logger.info("ID token expired; session ended")
        self._expiry = None
        self._set(None)

    def _set(self, identity: Optional[Identity]) -> None:
        if identity is None and self._expiry:
            self._expiry.cancel()
            self._expiry = None
        self._current = identity
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception:
                logger.exception("Auth listener raised")

    async def aclose(self) -> None:
        if self._expiry:
            self._expiry.cancel()
        if self._owns_client:
            await self._client.aclose()
