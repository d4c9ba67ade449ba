"""
UFree — Firebase Authentication.

Every Firestore call carries the user's Firebase ID token. This device
signs in anonymously on first run and keeps the session on disk, the
same way a phone keeps its Firebase session between launches.

Flow:
1. Load the session from FIREBASE_TOKEN_PATH.
2. If the ID token is expired (or about to be), refresh it.
3. If there is no session, sign in anonymously.
4. Persist the (refreshed) session for next time.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

_SIGN_UP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signUp"
_UPDATE_URL = "https://identitytoolkit.googleapis.com/v1/accounts:update"
_REFRESH_URL = "https://securetoken.googleapis.com/v1/token"
_TIMEOUT_SECONDS = 10
_EXPIRY_MARGIN_SECONDS = 60


class AuthError(Exception):
    """Raised when Firebase Authentication fails."""


@dataclass
class AuthSession:
    """A signed-in Firebase user."""

    user_id: str
    id_token: str
    refresh_token: str
    expires_at: float
    is_anonymous: bool = True
    display_name: str | None = None

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at - _EXPIRY_MARGIN_SECONDS


async def _post(url: str, api_key: str, **kwargs) -> dict:
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
            resp = await client.post(url, params={"key": api_key}, **kwargs)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPError as exc:
        logger.error("Firebase Auth request to %s failed: %s", url, exc)
        raise AuthError(f"Firebase Auth request failed: {exc}") from exc
    except ValueError as exc:
        logger.error("Firebase Auth returned a non-JSON body from %s", url)
        raise AuthError("Firebase Auth returned an unreadable response") from exc


async def sign_in_anonymously(api_key: str) -> AuthSession:
    """Create a new anonymous Firebase user."""
    data = await _post(_SIGN_UP_URL, api_key, json={"returnSecureToken": True})
    try:
        session = AuthSession(
            user_id=data["localId"],
            id_token=data["idToken"],
            refresh_token=data["refreshToken"],
            expires_at=time.time() + int(data.get("expiresIn", 3600)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthError(f"Unexpected sign-up response: {exc!r}") from exc
    logger.info("Signed in anonymously as %s", session.user_id)
    return session


async def refresh_session(session: AuthSession, api_key: str) -> AuthSession:
    """Exchange the refresh token for a fresh ID token."""
    data = await _post(
        _REFRESH_URL,
        api_key,
        data={"grant_type": "refresh_token", "refresh_token": session.refresh_token},
    )
    try:
        id_token = data["id_token"]
        refresh_token = data["refresh_token"]
        expires_in = int(data.get("expires_in", 3600))
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthError(f"Unexpected token refresh response: {exc!r}") from exc
    session.id_token = id_token
    session.refresh_token = refresh_token
    session.expires_at = time.time() + expires_in
    logger.info("ID token refreshed for %s", session.user_id)
    return session


async def update_display_name(session: AuthSession, name: str, api_key: str) -> AuthSession:
    await _post(
        _UPDATE_URL,
        api_key,
        json={"idToken": session.id_token, "displayName": name, "returnSecureToken": False},
    )
    session.display_name = name
    logger.info("Display name set for %s", session.user_id)
    return session


def load_session(token_path: Path) -> AuthSession | None:
    if not token_path.exists():
        return None
    try:
        return AuthSession(**json.loads(token_path.read_text()))
    except (ValueError, TypeError) as exc:
        logger.warning("Ignoring unreadable session file %s: %s", token_path, exc)
        return None


def save_session(session: AuthSession, token_path: Path) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(json.dumps(asdict(session)))
    logger.debug("Session saved to %s", token_path)


async def get_session() -> AuthSession:
    """Return a valid session, refreshing or signing in as needed."""
    from ufree.config import settings

    token_path = Path(settings.FIREBASE_TOKEN_PATH)
    session = load_session(token_path)
    if session is not None and not session.expired:
        return session

    if session is not None:
        try:
            session = await refresh_session(session, settings.FIREBASE_API_KEY)
        except AuthError as exc:
            logger.warning("Token refresh failed (%s), signing in again", exc)
            session = None

    if session is None:
        session = await sign_in_anonymously(settings.FIREBASE_API_KEY)

    save_session(session, token_path)
    return session


async def get_id_token() -> str:
    """Token provider for the Firestore client."""
    session = await get_session()
    return session.id_token
