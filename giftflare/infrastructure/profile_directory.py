"""Profile directory clients.

The profile directory is the account service that owns buyer names and
email addresses. Orders only carry the buyer id.
"""

from abc import ABC, abstractmethod

import httpx
import structlog

from giftflare.domain.exceptions import NotFoundError
from giftflare.domain.value_objects import Profile

logger = structlog.get_logger()


class ProfileDirectory(ABC):
    """Looks up account profiles."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile:
        """Get a profile by user id.

        Raises:
            NotFoundError: If the user has no profile.
        """

    async def close(self) -> None:
        """Release any held resources."""


class InMemoryProfileDirectory(ProfileDirectory):
    """Profile directory backed by a dict."""

    def __init__(self, profiles: list[Profile] | None = None) -> None:
        self._profiles = {p.user_id: p for p in profiles or []}

    def add(self, profile: Profile) -> None:
        """Register a profile."""
        self._profiles[profile.user_id] = profile

    async def get_profile(self, user_id: str) -> Profile:
        """Get profile by user id."""
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})
        return profile


class HttpProfileDirectory(ProfileDirectory):
    """Profile directory reached over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize directory client.

        Args:
            base_url: Profile service base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport override.
        """
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_profile(self, user_id: str) -> Profile:
        """Fetch a profile from the directory.

        Raises:
            NotFoundError: If the directory has no such user.
            httpx.HTTPError: On transport or server errors.
        """
        client = await self._get_client()
        response = await client.get(f"/profiles/{user_id}")

        if response.status_code == 404:
            raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})
        response.raise_for_status()

        data = response.json()
        return Profile(
            user_id=data.get("id", user_id),
            name=data.get("name", ""),
            email=data["email"],
            role=data.get("role", "buyer"),
            city=data.get("city"),
        )
