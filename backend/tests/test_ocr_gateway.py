"""
Tests for the rate-limited OCR gateway: ordering, pacing, error taxonomy and cancellation.
"""

import asyncio

import pytest
from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, ServiceRequestError

from conftest import FakeProvider
from receipt_ocr.services.ocr import (
    AnalysisGateway,
    AuthenticationFailed,
    OCRProviderError,
    ProviderError,
    QuotaExceeded,
)
from receipt_ocr.services.rate_limiter import RateLimiter


def http_error(status: int, message: str) -> HttpResponseError:
    error = HttpResponseError(message=message)
    error.status_code = status
    return error


class TestPacing:

    @pytest.mark.asyncio
    async def test_first_call_goes_straight_through(self, gateway_factory, waits):
        gateway, provider = gateway_factory()

        analysis = await gateway.analyze(b"receipt")

        assert analysis is provider.analysis
        assert waits == []
        assert gateway.rate_limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_second_call_waits_out_the_window(self, gateway_factory, clock, waits):
        gateway, provider = gateway_factory(max_requests=1, window_seconds=60)

        await gateway.analyze(b"first")
        clock.advance(10)
        await gateway.analyze(b"second")

        assert len(waits) == 1
        assert waits[0] >= 50
        assert provider.calls[1] - provider.calls[0] >= 60

    @pytest.mark.asyncio
    async def test_disabled_rate_limiting_never_sleeps(self, gateway_factory, waits):
        gateway, provider = gateway_factory(enabled=False)

        for _ in range(5):
            await gateway.analyze(b"receipt")

        assert waits == []
        assert len(provider.calls) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_requests,window_seconds", [(1, 60), (3, 5), (15, 1)])
    async def test_concurrent_requests_honor_window(self, gateway_factory, clock, max_requests, window_seconds):
        provider = FakeProvider(clock=clock, call_duration=0.05)
        gateway, _ = gateway_factory(provider=provider, max_requests=max_requests, window_seconds=window_seconds)

        await asyncio.gather(*(gateway.analyze(b"receipt") for _ in range(max_requests * 4)))

        starts = provider.calls
        assert len(starts) == max_requests * 4
        for i in range(len(starts) - max_requests):
            assert starts[i + max_requests] - starts[i] >= window_seconds

    @pytest.mark.asyncio
    async def test_only_one_call_in_flight(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock)
        gateway, _ = gateway_factory(provider=provider, enabled=False)

        await asyncio.gather(*(gateway.analyze(b"receipt") for _ in range(10)))

        assert provider.max_active == 1


class TestErrorTaxonomy:

    @pytest.mark.asyncio
    async def test_429_becomes_quota_exceeded_and_takes_a_slot(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[http_error(429, "Too Many Requests")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(QuotaExceeded):
            await gateway.analyze(b"receipt")

        assert gateway.rate_limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_401_becomes_authentication_failed(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[http_error(401, "Access denied")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(AuthenticationFailed):
            await gateway.analyze(b"receipt")

        assert gateway.rate_limiter.in_window() == 0

    @pytest.mark.asyncio
    async def test_client_authentication_error_becomes_authentication_failed(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[ClientAuthenticationError(message="Invalid key")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(AuthenticationFailed):
            await gateway.analyze(b"receipt")

    @pytest.mark.asyncio
    async def test_other_status_becomes_provider_error_with_status(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[http_error(500, "Internal error")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.analyze(b"receipt")

        assert exc_info.value.status == 500
        assert "Internal error" in exc_info.value.message
        assert "status 500" in str(exc_info.value)
        # Failed calls consumed no quota
        assert gateway.rate_limiter.in_window() == 0

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_provider_error_without_status(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[ServiceRequestError("connection refused")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(ProviderError) as exc_info:
            await gateway.analyze(b"receipt")

        assert exc_info.value.status is None

    def test_taxonomy_shares_a_base_class(self):
        for cls in (QuotaExceeded, AuthenticationFailed, ProviderError):
            assert issubclass(cls, OCRProviderError)

    @pytest.mark.asyncio
    async def test_token_released_after_failure(self, gateway_factory, clock):
        provider = FakeProvider(clock=clock, errors=[http_error(500, "boom")])
        gateway, _ = gateway_factory(provider=provider)

        with pytest.raises(ProviderError):
            await gateway.analyze(b"receipt")

        assert await gateway.analyze(b"receipt") is provider.analysis
        assert len(provider.calls) == 2


class BlockingProvider:
    """Provider that blocks until released, to exercise cancellation mid-call."""

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def analyze(self, document):
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return None


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_during_call_releases_token_and_records_nothing(self, clock):
        provider = BlockingProvider()
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        gateway = AnalysisGateway(provider, limiter)

        task = asyncio.create_task(gateway.analyze(b"receipt"))
        await provider.entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gateway._in_flight.locked() is False
        assert limiter.in_window() == 0

    @pytest.mark.asyncio
    async def test_cancel_during_wait_never_reaches_provider(self, clock):
        provider = FakeProvider(clock=clock)
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)
        sleeping = []

        async def never_wakes(seconds):
            sleeping.append(seconds)
            await asyncio.Event().wait()

        gateway = AnalysisGateway(provider, limiter, sleep=never_wakes)

        await gateway.analyze(b"first")
        task = asyncio.create_task(gateway.analyze(b"second"))
        while not sleeping:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gateway._in_flight.locked() is False
        assert len(provider.calls) == 1
        assert limiter.in_window() == 1


class ProbingProvider(FakeProvider):
    """FakeProvider with a connection probe that answers or raises."""

    def __init__(self, *args, probe_error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.probe_error = probe_error
        self.probes = 0

    async def check_connection(self):
        self.probes += 1
        if self.probe_error:
            raise self.probe_error
        return True


class TestCheckConnection:

    @pytest.mark.asyncio
    async def test_client_without_probe_is_assumed_reachable(self, gateway_factory):
        gateway, _ = gateway_factory()
        assert await gateway.check_connection() is True

    @pytest.mark.asyncio
    async def test_probe_failure_reports_false(self, gateway_factory, clock):
        provider = ProbingProvider(clock=clock, probe_error=ClientAuthenticationError(message="Invalid key"))
        gateway, _ = gateway_factory(provider=provider)

        assert await gateway.check_connection() is False
        assert gateway.rate_limiter.in_window() == 0

    @pytest.mark.asyncio
    async def test_successful_probe_takes_a_slot(self, gateway_factory, clock):
        gateway, _ = gateway_factory(provider=ProbingProvider(clock=clock))

        assert await gateway.check_connection() is True
        assert gateway.rate_limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_no_wait_probe_is_skipped_when_window_is_full(self, gateway_factory, clock, waits):
        provider = ProbingProvider(clock=clock)
        gateway, _ = gateway_factory(provider=provider, max_requests=1, window_seconds=60)
        await gateway.analyze(b"receipt")

        assert await gateway.check_connection(wait=False) is None
        assert provider.probes == 0
        assert waits == []
        assert gateway.rate_limiter.in_window() == 1

    @pytest.mark.asyncio
    async def test_no_wait_probe_runs_when_slot_is_free(self, gateway_factory, clock):
        provider = ProbingProvider(clock=clock)
        gateway, _ = gateway_factory(provider=provider, max_requests=1, window_seconds=60)

        assert await gateway.check_connection(wait=False) is True
        assert provider.probes == 1

    @pytest.mark.asyncio
    async def test_no_wait_probe_does_not_queue_behind_a_call(self, clock):
        provider = BlockingProvider()
        provider.check_connection = ProbingProvider().check_connection
        gateway = AnalysisGateway(provider, RateLimiter(enabled=False, clock=clock))

        task = asyncio.create_task(gateway.analyze(b"receipt"))
        await provider.entered.wait()

        assert await gateway.check_connection(wait=False) is None

        provider.release.set()
        await task
