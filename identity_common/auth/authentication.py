"""
Authentication handling for source and target identity APIs.
Supports SSWS API tokens (Okta), OAuth 2.0 client credentials (OneLogin)
and pre-issued bearer tokens (target platform).
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

import aiohttp

from ..errors import AuthenticationFailure, SourceUnavailable

logger = logging.getLogger("identity_common.auth")

# Refresh OAuth tokens this long before they actually expire.
TOKEN_EXPIRY_MARGIN = timedelta(minutes=5)


class Authenticator:
    """Builds request headers for one API from the credential it was given."""

    def __init__(self, base_url: str, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session

        # Credentials
        self.api_token: Optional[str] = None
        self.bearer_token: Optional[str] = None
        self.client_id: Optional[str] = None
        self.client_secret: Optional[str] = None
        self.token_path = "/auth/oauth2/v2/token"

        # OAuth state
        self.access_token: Optional[str] = None
        self.token_expires_at: Optional[datetime] = None
        self._token_lock = asyncio.Lock()

        self.headers: Optional[Dict[str, str]] = None

    def set_api_token(self, api_token: str):
        """Set SSWS API token for authentication."""
        self.api_token = api_token

    def set_bearer_token(self, token: str):
        """Set a pre-issued bearer token."""
        self.bearer_token = token

    def set_oauth_credentials(self, client_id: str, client_secret: str, token_path: Optional[str] = None):
        """Set OAuth 2.0 client credentials."""
        self.client_id = client_id
        self.client_secret = client_secret
        if token_path:
            self.token_path = token_path

    async def fetch_oauth_token(self) -> str:
        """Fetch an access token using the client credentials grant."""
        if self.session is None:
            raise RuntimeError("Authenticator has no HTTP session")

        token_url = f"{self.base_url}{self.token_path}"
        payload = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with self.session.post(token_url, json=payload) as response:
                text = await response.text()
                logger.debug("%s response status: %s", token_url, response.status)
                if response.status in (400, 401, 403):
                    raise AuthenticationFailure(
                        f"OAuth token request rejected with status {response.status}: {text[:200]}"
                    )
                if response.status >= 400:
                    raise SourceUnavailable(f"OAuth token request failed with status {response.status}")
                token_data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise SourceUnavailable(f"OAuth token request failed: {e}") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise AuthenticationFailure("Access token not found in OAuth response")

        expires_in = int(token_data.get("expires_in", 3600))
        self.token_expires_at = datetime.now() + timedelta(seconds=expires_in) - TOKEN_EXPIRY_MARGIN
        logger.info("OAuth token obtained, expires at %s", self.token_expires_at)
        return access_token

    async def ensure_valid_token(self):
        """Ensure we have a valid access token, refresh if needed."""
        async with self._token_lock:
            if (self.access_token and self.token_expires_at and
                    datetime.now() < self.token_expires_at):
                return
            self.access_token = await self.fetch_oauth_token()

    async def setup_authentication(self) -> Dict[str, str]:
        """Setup authentication headers based on available credentials."""
        # Priority: SSWS token, then bearer token, then OAuth
        if self.api_token:
            self.headers = self._headers(f"SSWS {self.api_token}")
        elif self.bearer_token:
            self.headers = self._headers(f"Bearer {self.bearer_token}")
        elif self.client_id and self.client_secret:
            await self.ensure_valid_token()
            self.headers = self._headers(f"bearer {self.access_token}")
        else:
            raise AuthenticationFailure(
                "No authentication credentials available (neither API token nor OAuth client credentials)"
            )
        return self.headers

    async def get_headers(self) -> Dict[str, str]:
        """Get current authentication headers, refreshing the OAuth token if needed."""
        if self.headers is None:
            return await self.setup_authentication()
        if self.client_id and self.client_secret and not (self.api_token or self.bearer_token):
            await self.ensure_valid_token()
            self.headers = self._headers(f"bearer {self.access_token}")
        return self.headers

    @staticmethod
    def _headers(authorization: str) -> Dict[str, str]:
        return {
            "Authorization": authorization,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
