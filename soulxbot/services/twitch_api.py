"""Twitch API client service.

Token types:
- App Access Token: for public lookups (streams, users). A single shared
  token, revalidated hourly and refetched only when validation fails.
- User Access Token: for calls made on a broadcaster's behalf (predictions,
  timeouts). Stored encrypted in the database, refreshed on demand.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx
import jwt

from soulxbot.core.errors import (
    Conflict,
    CredentialExpired,
    NotFound,
    TransientUpstreamError,
    Unauthorized,
    UpstreamRejected,
)
from soulxbot.core.vault import decrypt_token, encrypt_token
from soulxbot.models.platform import (
    BroadcastStatus,
    PlatformUser,
    Prediction,
    PredictionOutcome,
    TokenPair,
)
from soulxbot.models.user import EncryptedCredentials

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"
JWKS_URL = f"{OAUTH_BASE}/keys"

# Twitch requires apps to validate tokens at least once an hour
APP_TOKEN_VALIDATE_INTERVAL = 3600.0
USERS_BATCH_SIZE = 100


class CredentialStore(Protocol):
    async def get_credentials(self, user_id: str) -> EncryptedCredentials | None: ...

    async def save_credentials(
        self, user_id: str, access_token: bytes, refresh_token: bytes | None
    ) -> None: ...


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _token_pair(data: dict[str, Any]) -> TokenPair:
    scopes = data.get("scope") or []
    return TokenPair(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
        id_token=data.get("id_token"),
        scopes=list(scopes) if isinstance(scopes, list) else str(scopes).split(),
    )


def _prediction(data: dict[str, Any]) -> Prediction:
    return Prediction(
        id=data["id"],
        broadcaster_id=data["broadcaster_id"],
        title=data["title"],
        status=data["status"],
        outcomes=[PredictionOutcome(id=o["id"], title=o["title"]) for o in data.get("outcomes", [])],
    )


class TwitchAPIClient:
    """Client for the Twitch Helix and OAuth APIs.

    Manages a shared httpx client for connection reuse, the shared app
    access token, and custody of broadcaster user tokens.
    """

    BROADCASTER_SCOPES = [
        "openid",
        "channel:manage:predictions",
        "moderator:manage:banned_users",
    ]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        redirect_uri: str,
        credentials: CredentialStore,
        passphrase: str,
        http: httpx.AsyncClient | None = None,
        jwks_client: jwt.PyJWKClient | None = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.credentials = credentials
        self._passphrase = passphrase

        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._jwks = jwks_client or jwt.PyJWKClient(JWKS_URL)

        # App token cache
        self._app_token: str | None = None
        self._app_token_checked_at: float = 0.0
        self._app_token_lock = asyncio.Lock()

        # One in-flight user token acquisition per owner
        self._user_token_locks: dict[str, asyncio.Lock] = {}

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping network failures and 5xx to TransientUpstreamError."""
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"Twitch {method} {url} failed: {type(e).__name__}: {e}")
            raise TransientUpstreamError(f"{type(e).__name__}: {e}") from e
        if response.status_code >= 500:
            logger.warning(f"Twitch {method} {url} returned {response.status_code}")
            raise TransientUpstreamError(f"Twitch returned {response.status_code}")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        code = response.status_code
        if code < 400:
            return
        logger.warning(f"{what} failed: {code} {response.text[:200]}")
        if code == 401:
            raise CredentialExpired(f"{what}: token rejected")
        if code == 404:
            raise NotFound(f"{what}: not found")
        if code == 409:
            raise Conflict(f"{what}: conflict")
        raise UpstreamRejected(f"{what}: {code}")

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def authorize_url(self, state: str) -> str:
        """Authorization URL for a broadcaster, requesting an OIDC id token."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": " ".join(self.BROADCASTER_SCOPES),
                "claims": json.dumps({"id_token": {"preferred_username": None}}),
                "state": state,
                "force_verify": "true",
            }
        )
        return f"{OAUTH_BASE}/authorize?{query}"

    async def exchange_authorization_code(self, code: str) -> TokenPair:
        response = await self._send(
            "POST",
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
        )
        if response.status_code != 200:
            logger.warning(f"Failed to exchange code: {response.status_code}")
            raise Unauthorized("Authorization code rejected")
        return _token_pair(response.json())

    async def validate_token(self, token: str) -> bool:
        response = await self._send(
            "GET", f"{OAUTH_BASE}/validate", headers={"Authorization": f"OAuth {token}"}
        )
        return response.status_code == 200

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token. Raises CredentialExpired if it is rejected."""
        response = await self._send(
            "POST",
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        if response.status_code in (400, 401):
            raise CredentialExpired("Refresh token rejected")
        self._raise_for_status(response, "Token refresh")
        return _token_pair(response.json())

    async def verify_id_token(self, id_token: str) -> dict[str, Any]:
        """Verify an OIDC id token against Twitch's published signing keys."""
        try:
            signing_key = await asyncio.to_thread(self._jwks.get_signing_key_from_jwt, id_token)
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=OAUTH_BASE,
            )
        except jwt.PyJWTError as e:
            logger.warning(f"Invalid id token: {e}")
            raise Unauthorized("Invalid identity token") from e

    # ------------------------------------------------------------------
    # Token custody
    # ------------------------------------------------------------------

    async def _ensure_app_token(self) -> str:
        """Return the shared app token, fetching a new one only if validation fails."""
        async with self._app_token_lock:
            now = time.monotonic()
            if self._app_token and now - self._app_token_checked_at < APP_TOKEN_VALIDATE_INTERVAL:
                return self._app_token

            if self._app_token and await self.validate_token(self._app_token):
                self._app_token_checked_at = now
                return self._app_token

            response = await self._send(
                "POST",
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "client_credentials",
                },
            )
            if response.status_code != 200:
                logger.error(f"Failed to get app token: {response.status_code}")
                raise Unauthorized("App credentials rejected")

            self._app_token = response.json()["access_token"]
            self._app_token_checked_at = now
            logger.info("Fetched new app access token")
            return self._app_token

    async def user_access_token(self, owner_id: str) -> str:
        """Return a valid access token for *owner_id*, refreshing it if needed.

        Serialised per owner: callers queued behind an in-flight refresh
        re-read the stored pair and pick up the refreshed token.
        """
        lock = self._user_token_locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            creds = await self.credentials.get_credentials(owner_id)
            if creds is None:
                raise CredentialExpired(f"No stored credentials for {owner_id}")

            if creds.access_token is not None:
                access_token = decrypt_token(creds.access_token, self._passphrase)
                if await self.validate_token(access_token):
                    return access_token

            if creds.refresh_token is None:
                raise CredentialExpired(f"No refresh token for {owner_id}")

            refresh = decrypt_token(creds.refresh_token, self._passphrase)
            pair = await self.refresh_token(refresh)
            await self.credentials.save_credentials(
                owner_id,
                encrypt_token(pair.access_token, self._passphrase),
                encrypt_token(pair.refresh_token or refresh, self._passphrase),
            )
            logger.info(f"Refreshed user token for {owner_id}")
            return pair.access_token

    # ------------------------------------------------------------------
    # Helix (app token)
    # ------------------------------------------------------------------

    async def _helix_get(self, path: str, params: Any = None) -> httpx.Response:
        token = await self._ensure_app_token()
        response = await self._send(
            "GET", f"{HELIX_BASE}/{path}", params=params, headers=self._headers(token)
        )
        if response.status_code == 401:
            # Token revoked since last validation; fetch a fresh one once
            self._app_token = None
            token = await self._ensure_app_token()
            response = await self._send(
                "GET", f"{HELIX_BASE}/{path}", params=params, headers=self._headers(token)
            )
        return response

    async def get_broadcast_status(self, user_id: str) -> BroadcastStatus | None:
        """Return the live stream for *user_id*, or None when the channel is offline."""
        response = await self._helix_get("streams", params={"user_id": user_id})
        self._raise_for_status(response, "Get streams")
        data = response.json().get("data", [])
        if not data:
            return None
        stream = data[0]
        return BroadcastStatus(
            id=stream["id"],
            user_id=stream["user_id"],
            user_login=stream.get("user_login", ""),
            title=stream.get("title", ""),
            started_at=_parse_timestamp(stream.get("started_at")),
        )

    async def get_users(
        self, logins: Sequence[str] = (), ids: Sequence[str] = ()
    ) -> list[PlatformUser]:
        """Look up users by login and/or id, at most 100 identifiers per request."""
        params = [("login", login) for login in logins] + [("id", user_id) for user_id in ids]
        users: list[PlatformUser] = []
        for start in range(0, len(params), USERS_BATCH_SIZE):
            response = await self._helix_get("users", params=params[start : start + USERS_BATCH_SIZE])
            self._raise_for_status(response, "Get users")
            for u in response.json().get("data", []):
                users.append(
                    PlatformUser(id=u["id"], login=u["login"], display_name=u.get("display_name", u["login"]))
                )
        return users

    # ------------------------------------------------------------------
    # Helix (broadcaster token)
    # ------------------------------------------------------------------

    async def _helix_user_request(
        self, owner_id: str, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        token = await self.user_access_token(owner_id)
        return await self._send(method, f"{HELIX_BASE}/{path}", headers=self._headers(token), **kwargs)

    async def create_prediction(
        self, owner_id: str, title: str, window_seconds: int, outcomes: Sequence[str]
    ) -> Prediction:
        response = await self._helix_user_request(
            owner_id,
            "POST",
            "predictions",
            json={
                "broadcaster_id": owner_id,
                "title": title,
                "prediction_window": window_seconds,
                "outcomes": [{"title": o} for o in outcomes],
            },
        )
        self._raise_for_status(response, "Create prediction")
        return _prediction(response.json()["data"][0])

    async def resolve_prediction(
        self, owner_id: str, prediction_id: str, winning_outcome_id: str
    ) -> Prediction:
        response = await self._helix_user_request(
            owner_id,
            "PATCH",
            "predictions",
            json={
                "broadcaster_id": owner_id,
                "id": prediction_id,
                "status": "RESOLVED",
                "winning_outcome_id": winning_outcome_id,
            },
        )
        self._raise_for_status(response, "Resolve prediction")
        return _prediction(response.json()["data"][0])

    async def timeout_user(
        self, owner_id: str, target_user_id: str, seconds: int, reason: str
    ) -> None:
        response = await self._helix_user_request(
            owner_id,
            "POST",
            "moderation/bans",
            params={"broadcaster_id": owner_id, "moderator_id": owner_id},
            json={"data": {"user_id": target_user_id, "duration": seconds, "reason": reason}},
        )
        self._raise_for_status(response, "Timeout user")
        logger.info(f"Timed out {target_user_id} in {owner_id} for {seconds}s")
