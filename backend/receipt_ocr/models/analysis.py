"""
Provider-neutral view of an OCR analysis result.

The gateway hands these immutable values to the field extractor so the
extraction rules never depend on the Azure SDK types.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ProviderField:
    """A named field recognized by the provider's prebuilt receipt model."""
    kind: str  # "string", "currency", "float", "integer", "date", ...
    value: Any = None
    content: Optional[str] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class ProviderDocument:
    """Top-level document carrying named fields (MerchantName, Total, TransactionDate)."""
    fields: Dict[str, ProviderField] = field(default_factory=dict)

    def get(self, name: str) -> Optional[ProviderField]:
        return self.fields.get(name)


@dataclass(frozen=True)
class ProviderAnalysis:
    """Typed output of one provider call: optional document plus page lines."""
    document: Optional[ProviderDocument] = None
    pages: Tuple[Tuple[str, ...], ...] = ()

    @property
    def full_text(self) -> str:
        """All lines of all pages, in order, joined with single spaces."""
        return " ".join(line for page in self.pages for line in page)
