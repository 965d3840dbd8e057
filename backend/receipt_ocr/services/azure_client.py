"""
Azure Document Intelligence client for the prebuilt receipt model.
"""

import io
import logging
from typing import Any, Optional

from azure.ai.formrecognizer.aio import DocumentAnalysisClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import HttpResponseError

from receipt_ocr.config import settings
from receipt_ocr.models.analysis import ProviderAnalysis, ProviderDocument, ProviderField

logger = logging.getLogger(__name__)

# Structured fields the extractor consumes from the prebuilt receipt model
RECEIPT_FIELDS = ('MerchantName', 'Total', 'TransactionDate')


def to_provider_analysis(result: Any) -> ProviderAnalysis:
    """
    Convert an Azure AnalyzeResult into a ProviderAnalysis.

    Only the first document is used; pages keep their line order.
    """
    document: Optional[ProviderDocument] = None
    documents = getattr(result, 'documents', None) or []

    if documents:
        azure_fields = documents[0].fields or {}
        fields = {}
        for name in RECEIPT_FIELDS:
            azure_field = azure_fields.get(name)
            if azure_field is None:
                continue
            fields[name] = ProviderField(
                kind=azure_field.value_type,
                value=azure_field.value,
                content=azure_field.content,
                confidence=azure_field.confidence,
            )
        document = ProviderDocument(fields=fields)

    pages = tuple(
        tuple(line.content for line in (page.lines or []))
        for page in (getattr(result, 'pages', None) or [])
    )

    return ProviderAnalysis(document=document, pages=pages)


class AzureReceiptClient:
    """Thin async wrapper around DocumentAnalysisClient."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT
        self.api_key = api_key if api_key is not None else settings.AZURE_DOCUMENT_INTELLIGENCE_KEY
        self.model_id = model_id or settings.AZURE_DOCUMENT_INTELLIGENCE_MODEL_ID

        if not self.endpoint or not self.api_key:
            logger.warning("Azure Document Intelligence is not configured; set "
                           "AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT and AZURE_DOCUMENT_INTELLIGENCE_KEY")

    def _client(self) -> DocumentAnalysisClient:
        return DocumentAnalysisClient(
            endpoint=self.endpoint,
            credential=AzureKeyCredential(self.api_key),
        )

    async def analyze(self, document) -> ProviderAnalysis:
        """
        Run the receipt model on a document and wait for completion.

        Args:
            document: Raw bytes or a readable binary stream

        Raises:
            azure.core.exceptions.AzureError on any provider failure
        """
        logger.debug("Analyzing document", extra={"model_id": self.model_id})
        async with self._client() as client:
            poller = await client.begin_analyze_document(self.model_id, document)
            result = await poller.result()
        return to_provider_analysis(result)

    async def check_connection(self) -> bool:
        """Start (but do not wait for) an analysis of a 1-byte document."""
        try:
            async with self._client() as client:
                await client.begin_analyze_document(self.model_id, io.BytesIO(b"\0"))
        except HttpResponseError as exc:
            # Credentials were accepted; only the probe document was refused
            if exc.status_code == 400:
                return True
            raise
        return True
