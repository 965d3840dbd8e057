"""
Pydantic models for fuel receipts.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from datetime import date
from decimal import Decimal


FuelType = Literal["Corriente", "ACPM", "Urea"]


class ReceiptData(BaseModel):
    """Fields extracted from a fuel receipt. Every field is optional."""
    nombre_de_la_gasolinera: Optional[str] = None
    total: Optional[Decimal] = None
    placa: Optional[str] = None
    fecha_de_tanqueo: Optional[date] = None
    cantidad: Optional[Decimal] = None  # Gallons
    kilometraje: Optional[int] = None
    numero_de_vale: Optional[str] = None
    nit: Optional[str] = None
    tipo_de_combustible: Optional[FuelType] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True


class ConfidenceScores(BaseModel):
    """Per-field confidence, parallel to ReceiptData. 0 means not found."""
    nombre_de_la_gasolinera: float = 0.0
    total: float = 0.0
    placa: float = 0.0
    fecha_de_tanqueo: float = 0.0
    cantidad: float = 0.0
    kilometraje: float = 0.0
    numero_de_vale: float = 0.0
    nit: float = 0.0
    tipo_de_combustible: float = 0.0

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True


class ProcessingError(BaseModel):
    """Structured error returned to callers of the pipeline."""
    code: str  # RateLimitExceeded | ProcessingError | FileNotFound
    message: str


class ReceiptResponse(BaseModel):
    """Result of processing one receipt."""
    success: bool
    file_name: str = ""
    data: Optional[ReceiptData] = None
    confidence: Optional[ConfidenceScores] = None
    processing_time_ms: Optional[int] = None
    error: Optional[ProcessingError] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class BatchProcessingResponse(BaseModel):
    """Summary of processing every receipt in the receipts folder."""
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    results: List[ReceiptResponse] = []

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AvailableReceipt(BaseModel):
    """A receipt file waiting in the receipts folder."""
    name: str
    size_bytes: int

    class Config:
        alias_generator = to_camel
        populate_by_name = True
