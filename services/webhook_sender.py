"""
Webhook Sender.

Performs a single bounded-timeout POST of a notification payload
to a merchant callback endpoint.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from exceptions import DeadlineExceededError, TransportError
from models.delivery import SendResult

logger = logging.getLogger(__name__)


DEFAULT_HEADERS = {
    'Content-Type': 'application/json',
    'Accept': 'application/json'
}


class NotificationSender:
    """
    Sends notification payloads over HTTP.

    Network failures are returned as a transport-error SendResult rather
    than raised, so the caller decides what is retried. Any HTTP response,
    whatever its status, is a RESPONSE result. The body is ignored.
    """

    def __init__(
        self,
        timeout: float = 20.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the sender.

        Args:
            timeout: Client-side timeout per request in seconds
            session: Optional externally managed client session
        """
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        """Open the HTTP client session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True

    async def stop(self) -> None:
        """Close the HTTP client session if this sender opened it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> 'NotificationSender':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def send(
        self,
        destination: str,
        payload_json: str,
        deadline: Optional[float] = None
    ) -> SendResult:
        """
        POST a JSON payload to a destination.

        Args:
            destination: Callback URL
            payload_json: Serialized notification
            deadline: Caller's deadline in seconds; the tighter of this
                and the client timeout wins

        Returns:
            SendResult with the status code or the transport error
        """
        if self._session is None:
            await self.start()

        try:
            return await asyncio.wait_for(
                self._post(destination, payload_json),
                timeout=deadline
            )
        except asyncio.TimeoutError:
            if deadline is not None and deadline < self.timeout:
                error = DeadlineExceededError(
                    destination, f"no response within {deadline:.1f}s deadline"
                )
            else:
                error = TransportError(
                    destination, f"request timed out after {self.timeout:.1f}s"
                )
        except aiohttp.ClientError as e:
            error = TransportError(destination, f"{type(e).__name__}: {e}")

        logger.error(f"Network error delivering webhook: {error.message}")
        return SendResult.transport_error(error)

    async def _post(self, destination: str, payload_json: str) -> SendResult:
        async with self._session.post(
            destination,
            data=payload_json,
            headers=DEFAULT_HEADERS,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            allow_redirects=False
        ) as response:
            return SendResult.response(response.status)
