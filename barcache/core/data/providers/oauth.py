"""Token storage and refresh for the secondary vendor's OAuth flow."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
from pydantic import BaseModel

from barcache.core.exceptions import AuthenticationError
from barcache.core.logging import logger

ACCESS_REFRESH_MARGIN = timedelta(minutes=5)
REFRESH_TOKEN_LIFETIME = timedelta(days=7)


class TokenSet(BaseModel):
    """Persisted token file contents."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    refresh_expires_at: datetime


class SchwabTokenManager:
    """Keeps a valid bearer token, refreshing it shortly before expiry."""

    vendor_name = "schwab"

    def __init__(
        self,
        token_path: str | Path,
        client_id: str | None,
        client_secret: str | None,
        *,
        token_url: str = "https://api.schwabapi.com/v1/oauth/token",
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.token_path = Path(token_path)
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tokens: TokenSet | None = None
        self._lock = asyncio.Lock()

    def has_credentials(self) -> bool:
        return bool(self._client_id and self._client_secret) and (self._tokens is not None or self.token_path.exists())

    def load(self) -> TokenSet | None:
        if self._tokens is None and self.token_path.exists():
            self._tokens = TokenSet.model_validate_json(self.token_path.read_text(encoding="utf-8"))
        return self._tokens

    def save(self, tokens: TokenSet) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(tokens.model_dump_json(indent=2), encoding="utf-8")
        os.chmod(self.token_path, 0o600)
        self._tokens = tokens

    async def get_access_token(self) -> str:
        tokens = self.load()
        if tokens is None:
            raise AuthenticationError(
                f"No tokens found at {self.token_path}; complete the authorization flow first",
                self.vendor_name,
                auth_method="oauth2",
            )
        if self._clock() >= tokens.expires_at - ACCESS_REFRESH_MARGIN:
            tokens = await self.refresh()
        return tokens.access_token

    async def refresh(self, *, force: bool = False) -> TokenSet:
        """Exchange the refresh token for a new access token.

        Without ``force`` a token that is still valid (for example refreshed by
        a concurrent caller) is returned unchanged.
        """

        async with self._lock:
            tokens = self.load()
            now = self._clock()
            if tokens is None or now >= tokens.refresh_expires_at:
                raise AuthenticationError(
                    "Refresh token expired; re-run the authorization flow",
                    self.vendor_name,
                    auth_method="oauth2",
                )
            if not force and now < tokens.expires_at - ACCESS_REFRESH_MARGIN:
                return tokens
            payload = await self._token_request({"grant_type": "refresh_token", "refresh_token": tokens.refresh_token})
            refreshed = self._build_tokens(payload, previous=tokens)
            self.save(refreshed)
            logger.info("oauth_token_refreshed", vendor=self.vendor_name, expires_at=refreshed.expires_at)
            return refreshed

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """Complete the authorization-code grant and persist the tokens."""

        payload = await self._token_request(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        )
        tokens = self._build_tokens(payload, previous=None)
        self.save(tokens)
        return tokens

    async def _token_request(self, data: dict[str, str]) -> dict[str, object]:
        if not (self._client_id and self._client_secret):
            raise AuthenticationError("Schwab client credentials are not configured", self.vendor_name, "oauth2")
        try:
            response = await self._client.post(
                self._token_url, data=data, auth=(self._client_id, self._client_secret)
            )
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Token request failed: {exc}", self.vendor_name, "oauth2") from exc
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}",
                self.vendor_name,
                "oauth2",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AuthenticationError("Token endpoint returned a body that is not JSON", self.vendor_name, "oauth2") from exc

    def _build_tokens(self, payload: dict[str, object], previous: TokenSet | None) -> TokenSet:
        now = self._clock()
        refresh_token = str(payload.get("refresh_token") or (previous.refresh_token if previous else ""))
        rotated = previous is None or refresh_token != previous.refresh_token
        return TokenSet(
            access_token=str(payload["access_token"]),
            refresh_token=refresh_token,
            expires_at=now + timedelta(seconds=int(payload.get("expires_in", 1800))),
            refresh_expires_at=now + REFRESH_TOKEN_LIFETIME if rotated else previous.refresh_expires_at,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["SchwabTokenManager", "TokenSet"]
