from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Receipt OCR"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Azure Document Intelligence
    AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT: str = ""
    AZURE_DOCUMENT_INTELLIGENCE_KEY: str = ""
    AZURE_DOCUMENT_INTELLIGENCE_MODEL_ID: str = "prebuilt-receipt"

    # Rate limiting (F0: 1 request / 60s, S0: 15 requests / 1s)
    OCR_TIER: str = "F0"
    MAX_REQUESTS_PER_WINDOW: int = Field(default=1, ge=1)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, ge=1)
    RATE_LIMITING_ENABLED: bool = True

    # Batch processing
    RECEIPTS_FOLDER_PATH: str = "exampleReceipts"
    SUPPORTED_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png", ".pdf"]

    # Uploads
    MAX_UPLOAD_MB: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
