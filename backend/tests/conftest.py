"""
Shared fakes for the receipt OCR tests. Nothing here talks to Azure.
"""

import asyncio
from types import SimpleNamespace

import pytest

from receipt_ocr.models.analysis import ProviderAnalysis, ProviderDocument, ProviderField
from receipt_ocr.services.ocr import AnalysisGateway
from receipt_ocr.services.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Provider client returning canned analyses or raising queued errors."""

    def __init__(self, clock=None, analysis=None, errors=None, call_duration=0.0):
        self.clock = clock
        self.analysis = analysis or ProviderAnalysis(pages=(("GASOLINERA TEST",),))
        self.errors = list(errors or [])
        self.call_duration = call_duration
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def analyze(self, document):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.calls.append(self.clock() if self.clock else len(self.calls))
        try:
            await asyncio.sleep(0)
            if self.clock and self.call_duration:
                self.clock.advance(self.call_duration)
            if self.errors:
                raise self.errors.pop(0)
            return self.analysis
        finally:
            self.active -= 1


def make_sleep(clock: FakeClock, waits: list):
    """Sleep coroutine that advances the fake clock instead of waiting."""
    async def sleep(seconds: float):
        waits.append(seconds)
        clock.advance(seconds)
        await asyncio.sleep(0)
    return sleep


def make_analysis(lines, merchant=None, total=None, transaction_date=None) -> ProviderAnalysis:
    """Build a ProviderAnalysis with one page of lines and optional structured fields."""
    fields = {}
    if merchant is not None:
        fields['MerchantName'] = ProviderField(kind='string', value=merchant, content=merchant, confidence=0.97)
    if total is not None:
        fields['Total'] = ProviderField(
            kind='currency',
            value=SimpleNamespace(amount=total, symbol='$', code='COP'),
            content=f"${total}",
            confidence=0.95,
        )
    if transaction_date is not None:
        fields['TransactionDate'] = ProviderField(
            kind='date', value=transaction_date, content=str(transaction_date), confidence=0.93
        )
    document = ProviderDocument(fields=fields) if fields else None
    return ProviderAnalysis(document=document, pages=(tuple(lines),))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def waits():
    return []


@pytest.fixture
def sample_analysis():
    return make_analysis(
        [
            "ESTACION DE SERVICIO EL CRUCE",
            "NIT: 900.291.461-4",
            "Fecha: 2024-12-15",
            "PLACA HGW - 523",
            "Combustible: Corriente",
            "Cantidad: 10,366 Gal",
            "Kilometraje: 125000",
            "ORDEN DE VENTA: 4894",
        ],
        merchant="EL CRUCE",
        total=85000.0,
    )


@pytest.fixture
def gateway_factory(clock, waits):
    """Build a gateway around a FakeProvider sharing the fake clock."""
    def factory(provider=None, max_requests=1, window_seconds=60, enabled=True):
        provider = provider or FakeProvider(clock=clock)
        limiter = RateLimiter(
            max_requests=max_requests,
            window_seconds=window_seconds,
            enabled=enabled,
            clock=clock,
        )
        gateway = AnalysisGateway(provider, limiter, tier="TEST", sleep=make_sleep(clock, waits))
        return gateway, provider
    return factory


