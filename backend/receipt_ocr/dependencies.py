"""
Process-wide service wiring.

All requests must share one gateway so the in-flight token and the rate
window are global to the process.
"""

from functools import lru_cache

from receipt_ocr.config import settings
from receipt_ocr.services.azure_client import AzureReceiptClient
from receipt_ocr.services.ocr import AnalysisGateway
from receipt_ocr.services.processing import ReceiptProcessingService
from receipt_ocr.services.rate_limiter import RateLimiter


@lru_cache(maxsize=1)
def get_gateway() -> AnalysisGateway:
    return AnalysisGateway(
        client=AzureReceiptClient(),
        rate_limiter=RateLimiter.from_settings(settings),
        tier=settings.OCR_TIER,
    )


@lru_cache(maxsize=1)
def get_processing_service() -> ReceiptProcessingService:
    return ReceiptProcessingService(
        gateway=get_gateway(),
        receipts_folder=settings.RECEIPTS_FOLDER_PATH,
        supported_extensions=settings.SUPPORTED_EXTENSIONS,
    )
