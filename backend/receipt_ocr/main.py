import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from receipt_ocr.config import settings
from receipt_ocr.dependencies import get_gateway
from receipt_ocr.services.ocr import AnalysisGateway

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(
    title="Receipt OCR API",
    description="Fuel receipt extraction over Azure Document Intelligence",
    version="0.1.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {
        "message": "Receipt OCR API",
        "version": "0.1.0",
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

@app.get("/health/provider")
async def provider_health(gateway: AnalysisGateway = Depends(get_gateway)):
    """Probe the OCR provider only when a quota slot is free right now."""
    connected = await gateway.check_connection(wait=False)
    if connected is None:
        probe = "skipped"
    else:
        probe = "ok" if connected else "failed"
    return {
        "status": "healthy" if connected else "degraded",
        "probe": probe,
        "tier": gateway.tier,
        "requests_in_window": gateway.rate_limiter.in_window(),
    }

# Import routers
from receipt_ocr.routers import receipts

# Include routers
app.include_router(receipts.router)
