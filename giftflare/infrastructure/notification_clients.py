"""Email and SMS provider clients.

Each channel has an HTTP client for the real provider and a logging
client used when no provider URL is configured. Clients raise
NotificationChannelError on failure; retrying is the dispatcher's job.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from giftflare.domain.events import Channel
from giftflare.domain.exceptions import NotificationChannelError

logger = structlog.get_logger()


class ChannelClient(ABC):
    """Sends one templated message on one channel."""

    channel: Channel

    @abstractmethod
    async def send(self, to: str, template_id: str, payload: dict[str, Any]) -> None:
        """Send a templated message.

        Args:
            to: Email address or phone number.
            template_id: Provider template identifier.
            payload: Template variables.

        Raises:
            NotificationChannelError: If the provider rejects or is unreachable.
        """

    async def close(self) -> None:
        """Release any held resources."""


class EmailClient(ChannelClient):
    """Email channel."""

    channel = Channel.EMAIL


class SmsClient(ChannelClient):
    """SMS channel."""

    channel = Channel.SMS


# ============================================================================
# HTTP Provider Clients
# ============================================================================


class _HttpChannelMixin:
    """Shared httpx plumbing for provider clients."""

    channel: Channel

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize provider client.

        Args:
            base_url: Provider base URL.
            api_key: Bearer token for the provider, if it needs one.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport override.
        """
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, to: str, template_id: str, payload: dict[str, Any]) -> None:
        """POST the message to the provider."""
        try:
            client = await self._get_client()
            response = await client.post(
                "/messages",
                json={"to": to, "template_id": template_id, "data": payload},
            )
        except httpx.RequestError as e:
            logger.warning(
                "Notification provider request failed",
                channel=self.channel.value,
                template_id=template_id,
                error=str(e),
            )
            raise NotificationChannelError(
                self.channel.value, f"Request failed: {str(e)}"
            ) from e

        if response.status_code >= 300:
            raise NotificationChannelError(
                self.channel.value,
                f"Provider rejected message: {response.text}",
                response.status_code,
            )


class HttpEmailClient(_HttpChannelMixin, EmailClient):
    """Email provider reached over HTTP."""


class HttpSmsClient(_HttpChannelMixin, SmsClient):
    """SMS provider reached over HTTP."""


# ============================================================================
# Logging Clients
# ============================================================================


class _LoggingChannelMixin:
    """Logs messages instead of sending them."""

    channel: Channel

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def send(self, to: str, template_id: str, payload: dict[str, Any]) -> None:
        """Record and log the message."""
        self.sent.append((to, template_id, payload))
        logger.info(
            "Notification logged",
            channel=self.channel.value,
            to=to,
            template_id=template_id,
        )


class LoggingEmailClient(_LoggingChannelMixin, EmailClient):
    """Email client for development; nothing leaves the process."""


class LoggingSmsClient(_LoggingChannelMixin, SmsClient):
    """SMS client for development; nothing leaves the process."""
