"""
Receipts API router: thin HTTP glue over the processing pipeline.
"""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from typing import List
import logging

from receipt_ocr.config import settings
from receipt_ocr.dependencies import get_processing_service
from receipt_ocr.models.receipt import AvailableReceipt, BatchProcessingResponse, ReceiptResponse
from receipt_ocr.services.processing import (
    FILE_NOT_FOUND,
    RATE_LIMIT_EXCEEDED,
    ReceiptDocument,
    ReceiptProcessingService,
)

router = APIRouter(prefix="/receipts", tags=["receipts"])
logger = logging.getLogger(__name__)


def _raise_for_error(result: ReceiptResponse) -> None:
    """Map pipeline error codes onto HTTP status codes."""
    if result.success or result.error is None:
        return

    status_code = {
        RATE_LIMIT_EXCEEDED: 429,
        FILE_NOT_FOUND: 404,
    }.get(result.error.code, 500)

    raise HTTPException(
        status_code=status_code,
        detail=result.error.model_dump(),
    )


@router.post("/process", response_model=ReceiptResponse, response_model_by_alias=True)
async def process_receipt(
    file: UploadFile = File(...),
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """
    Upload a receipt image and extract its fields.

    Args:
        file: Uploaded receipt (JPG, PNG, PDF)

    Returns:
        Extracted fields with per-field confidence
    """
    file_data = await file.read()

    if not file_data:
        raise HTTPException(status_code=400, detail="Empty file")

    file_size_mb = len(file_data) / (1024 * 1024)
    if file_size_mb > settings.MAX_UPLOAD_MB:
        raise HTTPException(
            status_code=400,
            detail=f"File too large: {file_size_mb:.2f}MB. Maximum: {settings.MAX_UPLOAD_MB}MB"
        )

    result = await service.process(
        ReceiptDocument(content=file_data, file_name=file.filename or "uploaded_receipt")
    )
    _raise_for_error(result)
    return result


@router.get("/available", response_model=List[AvailableReceipt], response_model_by_alias=True)
async def list_available_receipts(
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """List receipt files waiting in the receipts folder."""
    return service.list_available_receipts()


@router.post("/process/{file_name}", response_model=ReceiptResponse, response_model_by_alias=True)
async def process_folder_receipt(
    file_name: str,
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Process one receipt from the receipts folder."""
    result = await service.process_file(file_name)
    _raise_for_error(result)
    return result


@router.post("/process-all", response_model=BatchProcessingResponse, response_model_by_alias=True)
async def process_all_receipts(
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Process every receipt in the receipts folder, one provider call at a time."""
    return await service.process_all()
