"""
OCR gateway: the single, rate-limited path to the external OCR provider.

Every call goes through one in-flight token (at most one provider call runs at
a time) and the sliding-window RateLimiter. Provider failures are translated
into a small exception taxonomy:

- QuotaExceeded: the provider rejected the call with 429
- AuthenticationFailed: credentials rejected (401/403)
- ProviderError: any other provider failure, with status and message

Quota accounting: successful calls and 429 rejections take a slot in the
window. Other failures and cancelled calls do not.
"""

import asyncio
import logging
from typing import Any, Awaitable, BinaryIO, Callable, Optional, Protocol, Union

from azure.core.exceptions import AzureError, ClientAuthenticationError

from receipt_ocr.models.analysis import ProviderAnalysis
from receipt_ocr.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

Document = Union[bytes, BinaryIO]


class OCRProviderError(Exception):
    """Base class for failures talking to the OCR provider."""


class QuotaExceeded(OCRProviderError):
    """The provider itself rejected the call for quota reasons."""


class AuthenticationFailed(OCRProviderError):
    """The provider rejected the configured credentials."""


class ProviderError(OCRProviderError):
    """Any other non-success response from the provider."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (status {self.status})"


class ReceiptAnalysisClient(Protocol):
    """What the gateway needs from a provider client."""

    async def analyze(self, document: Document) -> ProviderAnalysis:
        ...


class AnalysisGateway:
    """Serializes and paces calls to the OCR provider."""

    def __init__(
        self,
        client: ReceiptAnalysisClient,
        rate_limiter: RateLimiter,
        tier: str = "F0",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            client: Provider client (e.g., AzureReceiptClient)
            rate_limiter: Limiter owned by this gateway
            tier: Provider pricing tier, for log messages only
            sleep: Coroutine used to wait out the rate-limit delay
        """
        self.client = client
        self.rate_limiter = rate_limiter
        self.tier = tier
        self._sleep = sleep
        self._in_flight = asyncio.Lock()

    async def _wait_for_slot(self) -> None:
        # The limiter lock is released before sleeping; only the in-flight token is held.
        delay = self.rate_limiter.compute_delay()
        if delay > 0 and self.rate_limiter.enabled:
            logger.info("Rate limiting: waiting before OCR call", extra={
                "delay_seconds": round(delay, 2),
                "tier": self.tier,
                "max_requests": self.rate_limiter.max_requests,
                "window_seconds": self.rate_limiter.window_seconds,
            })
            await self._sleep(delay)

    def _translate(self, exc: AzureError) -> OCRProviderError:
        """Map an Azure SDK failure onto the gateway taxonomy."""
        status = getattr(exc, 'status_code', None)
        message = getattr(exc, 'message', None) or str(exc)

        if isinstance(exc, ClientAuthenticationError) or status in (401, 403):
            logger.error("OCR provider authentication failed; verify endpoint and key", extra={
                "status": status,
            })
            return AuthenticationFailed(message)

        if status == 429:
            logger.warning("OCR provider rejected the call for quota reasons", extra={
                "tier": self.tier,
                "max_requests": self.rate_limiter.max_requests,
                "window_seconds": self.rate_limiter.window_seconds,
            })
            return QuotaExceeded(message)

        logger.error("OCR provider request failed", extra={
            "status": status,
            "error": message,
        })
        return ProviderError(message, status=status)

    async def analyze(self, document: Document) -> ProviderAnalysis:
        """
        Send one document to the provider, honoring the rate limit.

        Args:
            document: Raw bytes or a readable binary stream

        Returns:
            ProviderAnalysis for the document

        Raises:
            QuotaExceeded, AuthenticationFailed, ProviderError
        """
        async with self._in_flight:
            await self._wait_for_slot()

            logger.info("Sending document to OCR provider", extra={"tier": self.tier})
            try:
                analysis = await self.client.analyze(document)
            except AzureError as exc:
                error = self._translate(exc)
                if isinstance(error, QuotaExceeded):
                    self.rate_limiter.record_request()
                raise error from exc

            self.rate_limiter.record_request()
            logger.info("Document analysis completed", extra={
                "pages": len(analysis.pages),
            })
            return analysis

    async def check_connection(self, wait: bool = True) -> Optional[bool]:
        """
        Verify the provider accepts our credentials.

        Goes through the same in-flight token and limiter as analyze(), since
        the provider meters the probe like any other call.

        Args:
            wait: When False, skip the probe instead of waiting out the window,
                so a health poll never delays or displaces a real receipt

        Returns:
            True if the provider answered, False if it failed, None if skipped
        """
        probe = getattr(self.client, 'check_connection', None)
        if probe is None:
            return True
        if not wait and self._in_flight.locked():
            logger.info("Skipping OCR provider probe, a call is already in flight", extra={
                "tier": self.tier,
            })
            return None

        async with self._in_flight:
            if not wait and self.rate_limiter.compute_delay() > 0:
                logger.info("Skipping OCR provider probe, no free slot in window", extra={
                    "tier": self.tier,
                })
                return None

            await self._wait_for_slot()
            try:
                ok = await probe()
            except AzureError:
                logger.warning("OCR provider connection check failed", exc_info=True)
                return False
            self.rate_limiter.record_request()
            return ok
