"""Google Indexing API client using a service-account JWT grant."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from jose import jwt

from app.config import Settings, settings
from app.core.exceptions import APIKeyMissingError, ExternalAPIError

logger = logging.getLogger(__name__)

INDEXING_SCOPE = "https://www.googleapis.com/auth/indexing"
PUBLISH_ENDPOINT = "https://indexing.googleapis.com/v3/urlNotifications:publish"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@dataclass(frozen=True)
class IndexingResult:
    success: bool
    url: str
    message: str | None = None
    error: str | None = None


def parse_service_account(raw: str) -> dict[str, Any]:
    """Parse and sanity-check service account credentials JSON."""
    try:
        credentials = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExternalAPIError("Google Indexing", "Credentials are not valid JSON") from exc
    if not isinstance(credentials, dict):
        raise ExternalAPIError("Google Indexing", "Credentials must be a JSON object")
    missing = [key for key in ("client_email", "private_key") if not credentials.get(key)]
    if missing:
        raise ExternalAPIError(
            "Google Indexing",
            "Credentials missing fields: " + ", ".join(missing),
        )
    return credentials


def build_assertion(credentials: dict[str, Any], *, now: int | None = None) -> str:
    """Signed RS256 JWT asserting the service account for the indexing scope."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": credentials["client_email"],
        "scope": INDEXING_SCOPE,
        "aud": credentials.get("token_uri") or DEFAULT_TOKEN_URI,
        "iat": issued_at,
        "exp": issued_at + 3600,
    }
    headers = {"kid": credentials["private_key_id"]} if credentials.get("private_key_id") else None
    return jwt.encode(claims, credentials["private_key"], algorithm="RS256", headers=headers)


class GoogleIndexingClient:
    """Submits published URLs to Google for faster indexing."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = app_settings or settings
        if not self.settings.google_indexing_credentials_json:
            raise APIKeyMissingError("Google Indexing")
        self.credentials = parse_service_account(self.settings.google_indexing_credentials_json)
        self._http_client = http_client

    async def request_indexing(self, url: str) -> IndexingResult:
        """Notify Google that ``url`` was created or updated.

        Never raises; transport and API errors come back as a failed result.
        """
        own_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(
            timeout=self.settings.indexing_timeout_seconds,
        )
        try:
            token = await self._access_token(client)
            response = await client.post(
                PUBLISH_ENDPOINT,
                json={"url": url, "type": "URL_UPDATED"},
                headers={"Authorization": f"Bearer {token}"},
            )
            if response.status_code >= 400:
                return IndexingResult(
                    success=False,
                    url=url,
                    error=f"HTTP {response.status_code}: {response.text[:400]}",
                )
            body = response.json() if response.content else {}
            latest = ((body.get("urlNotificationMetadata") or {}).get("latestUpdate") or {})
            return IndexingResult(
                success=True,
                url=url,
                message=f"URL submitted for indexing: {latest.get('type') or 'success'}",
            )
        except (httpx.HTTPError, ExternalAPIError, ValueError) as exc:
            logger.warning("Google indexing request failed", extra={"url": url, "error": str(exc)})
            return IndexingResult(success=False, url=url, error=str(exc))
        finally:
            if own_client:
                await client.aclose()

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        token_uri = self.credentials.get("token_uri") or DEFAULT_TOKEN_URI
        response = await client.post(
            token_uri,
            data={"grant_type": JWT_GRANT_TYPE, "assertion": build_assertion(self.credentials)},
        )
        if response.status_code >= 400:
            raise ExternalAPIError(
                "Google Indexing",
                f"token exchange failed with HTTP {response.status_code}",
            )
        token = response.json().get("access_token")
        if not token:
            raise ExternalAPIError("Google Indexing", "token response had no access_token")
        return str(token)
