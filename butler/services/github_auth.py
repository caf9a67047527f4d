"""GitHub App authentication: installation access tokens from app credentials."""

import time
from datetime import datetime, timezone
from typing import Optional

import httpx
import jwt

from ..core.config import GitHubAppConfig
from ..core.errors import GitHubError
from ..core.logging import get_logger

logger = get_logger(__name__)

# Refresh this many seconds before GitHub's stated expiry
TOKEN_REFRESH_MARGIN = 60


def build_app_jwt(app_id: int, private_key: str, now: Optional[float] = None) -> str:
    """Sign the short-lived JWT GitHub expects from an App (RS256, max 10 minutes)."""
    issued = int(now if now is not None else time.time())
    payload = {
        "iat": issued - 60,  # tolerate clock drift
        "exp": issued + 540,
        "iss": str(app_id),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class StaticTokenProvider:
    """Token provider for a personal or fine-grained access token."""

    def __init__(self, token: str):
        self.token = token

    async def __call__(self) -> str:
        return self.token


class InstallationTokenProvider:
    """Mints and caches installation access tokens.

    The cache only avoids re-minting; two concurrent refreshes simply produce
    two valid tokens.
    """

    def __init__(
        self,
        app_id: int,
        installation_id: int,
        private_key: str,
        api_url: str = "https://api.github.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.installation_id = installation_id
        self.private_key = private_key
        self.api_url = api_url.rstrip("/")
        self.transport = transport
        self._token: Optional[str] = None
        self._expires_at = 0.0

    async def __call__(self) -> str:
        if self._token and time.time() < self._expires_at - TOKEN_REFRESH_MARGIN:
            return self._token

        app_jwt = build_app_jwt(self.app_id, self.private_key)
        path = f"/app/installations/{self.installation_id}/access_tokens"
        async with httpx.AsyncClient(base_url=self.api_url, timeout=15.0, transport=self.transport) as client:
            response = await client.post(
                path,
                headers={
                    "Authorization": f"Bearer {app_jwt}",
                    "Accept": "application/vnd.github+json",
                },
            )
        if response.status_code != 201:
            raise GitHubError(response.status_code, response.text, path)

        data = response.json()
        self._token = data["token"]
        expires = data.get("expires_at")
        if expires:
            self._expires_at = datetime.fromisoformat(expires.replace("Z", "+00:00")).timestamp()
        else:
            self._expires_at = time.time() + 3600
        logger.info(f"Minted installation token for installation {self.installation_id}")
        return self._token


def build_token_provider(config: GitHubAppConfig):
    """Choose static-token or App-installation auth from configuration.

    Raises:
        ValueError: If neither a token nor complete App credentials are configured
    """
    if config.token:
        return StaticTokenProvider(config.token)
    if config.app_id and config.installation_id and config.private_key:
        return InstallationTokenProvider(
            app_id=config.app_id,
            installation_id=config.installation_id,
            private_key=config.private_key,
            api_url=config.api_url,
        )
    raise ValueError(
        "GitHub credentials missing: set GITHUB_TOKEN or APP_ID, INSTALLATION_ID and PRIVATE_KEY"
    )
