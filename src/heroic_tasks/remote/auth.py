# src/heroic_tasks/remote/auth.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import httpx

from ..core.errors import StoreUnavailable, ValidationFailed

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# Refresh the id token this long before it actually expires.
TOKEN_REFRESH_LEEWAY_SECONDS = 60.0

IdentityHandler = Callable[[str | None], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class AuthSession:
    uid: str
    id_token: str
    refresh_token: str
    expires_at: float
    email: str | None = None

    def expired(self, now: float, leeway: float = TOKEN_REFRESH_LEEWAY_SECONDS) -> bool:
        return now + leeway >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthSession:
        return cls(
            uid=str(data["uid"]),
            id_token=str(data.get("id_token") or ""),
            refresh_token=str(data["refresh_token"]),
            expires_at=float(data.get("expires_at") or 0.0),
            email=data.get("email"),
        )


def _load_json(path: Path) -> dict[str, Any]:
    raw = path.read_text("utf-8")
    val = json.loads(raw)
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    try:
        os.chmod(path, 0o600)
    except OSError:
        # Not critical on Windows or restricted FS.
        pass


def _auth_error_code(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return f"HTTP {resp.status_code}"


class FirebaseAuthClient:
    """Email/password accounts over the Identity Toolkit + Secure Token REST APIs."""

    def __init__(
        self,
        api_key: str,
        *,
        http: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not api_key:
            raise StoreUnavailable("remote auth is not configured: set HEROIC_FIREBASE_API_KEY")
        self._api_key = api_key
        self._clock = clock
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._http.post(url, params={"key": self._api_key}, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"auth service unreachable: {e}") from e

        if resp.status_code == 400:
            # INVALID_PASSWORD, EMAIL_EXISTS, TOKEN_EXPIRED, ...
            raise ValidationFailed(_auth_error_code(resp))
        if resp.is_error:
            raise StoreUnavailable(f"auth service error: {_auth_error_code(resp)}")
        data = resp.json()
        if not isinstance(data, dict):
            raise StoreUnavailable("unexpected auth response")
        return data

    def _session_from_account(self, data: dict[str, Any]) -> AuthSession:
        return AuthSession(
            uid=str(data["localId"]),
            id_token=str(data["idToken"]),
            refresh_token=str(data["refreshToken"]),
            expires_at=self._clock() + float(data.get("expiresIn") or 3600),
            email=data.get("email"),
        )

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        return self._session_from_account(data)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        data = await self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signUp",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        return self._session_from_account(data)

    async def refresh(self, session: AuthSession) -> AuthSession:
        data = await self._post(
            SECURE_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": session.refresh_token},
        )
        return AuthSession(
            uid=str(data.get("user_id") or session.uid),
            id_token=str(data["id_token"]),
            refresh_token=str(data.get("refresh_token") or session.refresh_token),
            expires_at=self._clock() + float(data.get("expires_in") or 3600),
            email=session.email,
        )


class AuthProvider:
    """
    Current signed-in identity.

    - persists the session to session.json (sensitive: keep it under a gitignored dir)
    - restores it at start-up through the refresh token
    - hands out fresh bearer tokens (id_token) to the remote store client
    - notifies subscribers with the owner id (uid, or None on sign-out)
    """

    def __init__(
        self,
        client: FirebaseAuthClient | None,
        session_path: str | Path,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._session_path = Path(session_path)
        self._clock = clock
        self._session: AuthSession | None = None
        self._handlers: list[IdentityHandler] = []
        self._refresh_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self._client is not None

    @property
    def current(self) -> AuthSession | None:
        return self._session

    @property
    def uid(self) -> str | None:
        return self._session.uid if self._session else None

    def subscribe(self, handler: IdentityHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers.remove(handler)

        return _unsubscribe

    async def _notify(self) -> None:
        uid = self.uid
        for handler in list(self._handlers):
            try:
                await handler(uid)
            except Exception:
                logger.exception("Identity handler failed for uid=%s", uid)

    def _require_client(self) -> FirebaseAuthClient:
        if self._client is None:
            raise StoreUnavailable(
                "remote accounts are not configured: set HEROIC_FIREBASE_API_KEY and HEROIC_FIREBASE_PROJECT_ID"
            )
        return self._client

    def _save(self) -> None:
        if self._session is None:
            return
        try:
            _atomic_write_json(self._session_path, self._session.to_dict())
        except OSError as e:
            logger.warning("Failed to persist auth session to %s: %r", self._session_path, e)

    def _forget(self) -> None:
        try:
            self._session_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove %s: %r", self._session_path, e)

    async def restore(self) -> str | None:
        """Load session.json and refresh it. Returns the uid, or None when signed out."""
        if self._client is None or not self._session_path.exists():
            return None
        try:
            stored = AuthSession.from_dict(_load_json(self._session_path))
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Ignoring unreadable session file %s: %r", self._session_path, e)
            return None

        try:
            self._session = await self._client.refresh(stored)
        except ValidationFailed as e:
            logger.warning("Stored session rejected (%s); signing out.", e)
            self._forget()
            return None
        except StoreUnavailable as e:
            # Offline: keep the stored identity, the token is refreshed on first use.
            logger.warning("Could not refresh stored session: %s", e)
            self._session = stored
        else:
            self._save()

        logger.info("Restored session for uid=%s", self._session.uid)
        return self._session.uid

    async def sign_in(self, email: str, password: str) -> str:
        session = await self._require_client().sign_in(email.strip(), password)
        return await self._set_session(session)

    async def sign_up(self, email: str, password: str) -> str:
        session = await self._require_client().sign_up(email.strip(), password)
        return await self._set_session(session)

    async def _set_session(self, session: AuthSession) -> str:
        self._session = session
        self._save()
        logger.info("Signed in uid=%s", session.uid)
        await self._notify()
        return session.uid

    async def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info("Signing out uid=%s", self._session.uid)
        self._session = None
        self._forget()
        await self._notify()

    async def id_token(self) -> str | None:
        """Bearer token for the remote store; refreshed when close to expiry."""
        session = self._session
        if session is None or self._client is None:
            return None
        if not session.expired(self._clock()):
            return session.id_token

        async with self._refresh_lock:
            session = self._session
            if session is None:
                return None
            if session.expired(self._clock()):
                session = await self._client.refresh(session)
                self._session = session
                self._save()
            return session.id_token
