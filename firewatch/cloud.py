# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Firebase Realtime Database REST client.

Handles the sign-in handshake (Identity Toolkit) and path-based reads and
writes against the Realtime Database REST API. The client holds no auth
state of its own: sign_in() returns a CloudSession and every data call takes
the session explicitly. The ConnectivityManager owns that session.

Usage:
    client = FirebaseClient(database_url, api_key, email, password)
    session = await client.sign_in()
    await client.write(session, "FireWatch/node-01/gas", 420)
    history = await client.read_recent(session, "FireWatch/node-01/history", 10)
    await client.close()
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from firewatch.exceptions import CloudAuthError, CloudError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloudSession:
    """An authenticated cloud session.

    Attributes:
        id_token: Bearer token passed as ?auth= on data requests
        user_id: Firebase user id of the device account
        expires_at: time.monotonic() deadline after which the token is stale
    """
    id_token: str
    user_id: str
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class FirebaseClient:
    """Firebase Realtime Database REST client."""

    AUTH_BASE_URL = "https://identitytoolkit.googleapis.com/v1"
    # Renew a little before Firebase's one hour token lifetime
    TOKEN_MARGIN_SECONDS = 60

    def __init__(
        self,
        database_url: str,
        api_key: str,
        email: str = "",
        password: str = "",
        timeout_seconds: float = 10.0,
    ):
        """Initialize Firebase client.

        Args:
            database_url: Realtime Database URL (https://<project>.firebaseio.com)
            api_key: Web API key of the Firebase project
            email: Device account email (anonymous sign-in when empty)
            password: Device account password
            timeout_seconds: Per-request timeout
        """
        self.database_url = database_url.rstrip("/")
        self.api_key = api_key
        self.email = email
        self.password = password
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    # ==================== Auth ====================

    async def sign_in(self) -> CloudSession:
        """Run the sign-in handshake.

        Returns:
            A fresh CloudSession

        Raises:
            CloudAuthError: If the handshake is rejected or times out
        """
        if self.email:
            url = f"{self.AUTH_BASE_URL}/accounts:signInWithPassword"
            payload = {"email": self.email, "password": self.password, "returnSecureToken": True}
        else:
            url = f"{self.AUTH_BASE_URL}/accounts:signUp"
            payload = {"returnSecureToken": True}

        try:
            session = await self._get_session()
            async with session.post(url, params={"key": self.api_key}, json=payload) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise CloudAuthError(f"Sign-in rejected ({resp.status}): {text}")
                data = await resp.json()
        except asyncio.TimeoutError as e:
            raise CloudAuthError("Sign-in timed out") from e
        except aiohttp.ClientError as e:
            raise CloudAuthError(f"Sign-in request failed: {e}") from e

        try:
            lifetime = int(data.get("expiresIn", 3600))
            cloud_session = CloudSession(
                id_token=data["idToken"],
                user_id=data.get("localId", ""),
                expires_at=time.monotonic() + max(0, lifetime - self.TOKEN_MARGIN_SECONDS),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CloudAuthError(f"Malformed sign-in response: {e}") from e

        logger.info(f"Cloud sign-in succeeded (uid={cloud_session.user_id or 'anonymous'})")
        return cloud_session

    # ==================== Data ====================

    async def write(self, cloud_session: CloudSession, path: str, value: Any) -> None:
        """Set the value at path (PUT).

        Raises:
            CloudError: If the write is rejected or fails
        """
        await self._request("PUT", cloud_session, path, body=value)

    async def push(self, cloud_session: CloudSession, path: str, value: Any) -> str:
        """Append value under path with a generated key (POST).

        Returns:
            The generated child key

        Raises:
            CloudError: If the write is rejected or fails
        """
        data = await self._request("POST", cloud_session, path, body=value)
        return (data or {}).get("name", "")

    async def read_recent(self, cloud_session: CloudSession, path: str, limit: int) -> List[Dict[str, Any]]:
        """Read the newest `limit` children under path, oldest first.

        Raises:
            CloudError: If the read is rejected or fails
        """
        params = {"orderBy": json.dumps("$key"), "limitToLast": str(limit)}
        data = await self._request("GET", cloud_session, path, params=params)
        if not data:
            return []
        if not isinstance(data, dict):
            raise CloudError(f"Unexpected payload at {path}: {type(data).__name__}")
        # Push keys sort chronologically
        return [data[key] for key in sorted(data) if isinstance(data[key], dict)]

    async def _request(
        self,
        method: str,
        cloud_session: CloudSession,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.database_url}/{path.strip('/')}.json"
        query = {"auth": cloud_session.id_token}
        if params:
            query.update(params)

        try:
            session = await self._get_session()
            async with session.request(method, url, params=query, json=body) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise CloudError(f"{method} {path} failed ({resp.status}): {text}")
                return await resp.json()
        except asyncio.TimeoutError as e:
            raise CloudError(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise CloudError(f"{method} {path} failed: {e}") from e


def get_cloud_client(config):
    """Factory function to get appropriate cloud client based on config."""
    if config.mock_mode:
        from firewatch.mocks import MockCloudStore
        logger.info("Using MockCloudStore (mock_mode=True)")
        return MockCloudStore()

    if not config.telemetry_enabled:
        return None

    logger.info(f"Using FirebaseClient ({config.cloud.database_url})")
    return FirebaseClient(
        database_url=config.cloud.database_url,
        api_key=config.cloud.api_key,
        email=config.cloud.email,
        password=config.cloud.password,
        timeout_seconds=config.cloud.timeout_seconds,
    )
