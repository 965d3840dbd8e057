"""
Receipt processing pipeline: document -> OCR gateway -> field extractor -> timed response.

The pipeline never retries. A quota rejection already means the window is
exhausted for the whole process, so it is surfaced as RateLimitExceeded and
retry policy is left to the caller.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

from receipt_ocr.models.receipt import (
    AvailableReceipt,
    BatchProcessingResponse,
    ProcessingError,
    ReceiptResponse,
)
from receipt_ocr.services.ocr import AnalysisGateway, QuotaExceeded, OCRProviderError
from receipt_ocr.services.parser import ExtractionResult, FieldExtractor

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
PROCESSING_ERROR = "ProcessingError"
FILE_NOT_FOUND = "FileNotFound"


@dataclass
class ReceiptDocument:
    """A receipt to process: raw bytes or a readable binary stream, plus its name."""
    content: Union[bytes, BinaryIO]
    file_name: str = ""

    def read(self) -> bytes:
        if isinstance(self.content, (bytes, bytearray)):
            return bytes(self.content)
        return self.content.read()


def report_extraction(file_name: str, result: ExtractionResult) -> None:
    """Log what was (and was not) found. Kept apart from extraction itself."""
    data = result.data.model_dump()
    confidence = result.confidence.model_dump()

    for field_name, value in data.items():
        if value is None:
            logger.warning("Could not extract field from receipt", extra={
                "file_name": file_name,
                "field": field_name,
            })
        else:
            logger.debug("Extracted field", extra={
                "file_name": file_name,
                "field": field_name,
                "value": str(value),
                "confidence": confidence[field_name],
                "rule": result.rules.get(field_name),
            })


class ReceiptProcessingService:
    """Orchestrates OCR and field extraction for single receipts and folders."""

    def __init__(
        self,
        gateway: AnalysisGateway,
        extractor: Optional[FieldExtractor] = None,
        receipts_folder: Union[str, Path] = "exampleReceipts",
        supported_extensions: Sequence[str] = (".jpg", ".jpeg", ".png", ".pdf"),
    ):
        self.gateway = gateway
        self.extractor = extractor or FieldExtractor()
        self.receipts_folder = Path(receipts_folder)
        self.supported_extensions = tuple(ext.lower() for ext in supported_extensions)

    def _elapsed_ms(self, started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    async def process(self, document: ReceiptDocument) -> ReceiptResponse:
        """
        Run one receipt through the pipeline.

        Args:
            document: Receipt bytes/stream and its file name (diagnostics only)

        Returns:
            ReceiptResponse with data and confidence on success, or an error
            with code RateLimitExceeded / ProcessingError
        """
        started = time.perf_counter()
        file_name = document.file_name

        try:
            content = document.read()

            logger.info("Processing receipt", extra={
                "file_name": file_name,
                "size_bytes": len(content),
            })

            analysis = await self.gateway.analyze(content)
            result = self.extractor.extract(analysis)

        except QuotaExceeded:
            logger.warning("Rate limit exceeded while processing receipt", extra={
                "file_name": file_name,
            })
            return ReceiptResponse(
                success=False,
                file_name=file_name,
                processing_time_ms=self._elapsed_ms(started),
                error=ProcessingError(
                    code=RATE_LIMIT_EXCEEDED,
                    message="OCR provider rate limit exceeded. Please wait before retrying.",
                ),
            )

        except (OCRProviderError, OSError, ValueError) as e:
            logger.error("Error processing receipt", extra={
                "file_name": file_name,
                "error": str(e),
            }, exc_info=True)
            return ReceiptResponse(
                success=False,
                file_name=file_name,
                processing_time_ms=self._elapsed_ms(started),
                error=ProcessingError(code=PROCESSING_ERROR, message=str(e)),
            )

        report_extraction(file_name, result)
        elapsed = self._elapsed_ms(started)

        logger.info("Successfully processed receipt", extra={
            "file_name": file_name,
            "processing_time_ms": elapsed,
        })

        return ReceiptResponse(
            success=True,
            file_name=file_name,
            data=result.data,
            confidence=result.confidence,
            processing_time_ms=elapsed,
        )

    def list_available_receipts(self) -> List[AvailableReceipt]:
        """Receipt files in the receipts folder with a supported extension, sorted by name."""
        if not self.receipts_folder.is_dir():
            logger.warning("Receipts folder not found", extra={
                "path": str(self.receipts_folder),
            })
            return []

        files = sorted(
            (
                path for path in self.receipts_folder.iterdir()
                if path.is_file() and path.suffix.lower() in self.supported_extensions
            ),
            key=lambda path: path.name,
        )

        logger.info("Found receipt files", extra={
            "count": len(files),
            "path": str(self.receipts_folder),
        })

        return [AvailableReceipt(name=path.name, size_bytes=path.stat().st_size) for path in files]

    async def process_file(self, file_name: str) -> ReceiptResponse:
        """Process a receipt stored in the receipts folder."""
        path = self.receipts_folder / file_name

        # Names must stay inside the receipts folder
        if Path(file_name).name != file_name or not path.is_file():
            logger.warning("Receipt file not found", extra={"path": str(path)})
            return ReceiptResponse(
                success=False,
                file_name=file_name,
                error=ProcessingError(
                    code=FILE_NOT_FOUND,
                    message=f"Receipt file '{file_name}' not found in {self.receipts_folder} folder",
                ),
            )

        with path.open('rb') as stream:
            return await self.process(ReceiptDocument(content=stream, file_name=file_name))

    async def process_all(self) -> BatchProcessingResponse:
        """Process every available receipt sequentially."""
        receipts = self.list_available_receipts()
        response = BatchProcessingResponse()

        logger.info("Starting batch processing", extra={"count": len(receipts)})

        for receipt in receipts:
            result = await self.process_file(receipt.name)
            response.results.append(result)
            response.total_processed += 1
            if result.success:
                response.successful += 1
            else:
                response.failed += 1

        logger.info("Batch processing completed", extra={
            "total": response.total_processed,
            "successful": response.successful,
            "failed": response.failed,
        })

        return response
