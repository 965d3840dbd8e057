"""
Fuel receipt field extractor.

Merges the provider's structured fields (merchant, total, transaction date)
with pattern cascades run over the full OCR text. Each cascade is an ordered
table of rules; the first rule that matches and normalizes wins and carries a
fixed confidence reflecting how specific the rule is.

The extractor is pure: the same ProviderAnalysis always yields the same
ExtractionResult, and nothing is logged here.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence, Tuple

from receipt_ocr.models.analysis import ProviderAnalysis, ProviderField
from receipt_ocr.models.receipt import ConfidenceScores, ReceiptData
from receipt_ocr.utils.numbers import (
    parse_day_first_date,
    parse_decimal,
    parse_int,
    parse_iso_date,
    to_decimal,
)


@dataclass(frozen=True)
class FieldRule:
    """One tier of a cascade: a regex, its confidence and how to normalize group 1."""
    name: str
    pattern: str
    confidence: float
    normalize: Callable[[str], Any]
    example: str = ""
    flags: int = re.IGNORECASE
    compiled: re.Pattern = field(default=None, init=False, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'compiled', re.compile(self.pattern, self.flags))

    def apply(self, text: str) -> Optional[Any]:
        """Normalized value of the first match, or None when the rule does not apply."""
        match = self.compiled.search(text)
        if not match:
            return None
        return self.normalize(match.group(1))


class FieldMatch(NamedTuple):
    value: Any
    confidence: float
    rule: Optional[str]


NO_MATCH = FieldMatch(None, 0.0, None)


class ExtractionResult(NamedTuple):
    """Receipt data and its confidence map, always produced together."""
    data: ReceiptData
    confidence: ConfidenceScores
    rules: Dict[str, Optional[str]]


def run_cascade(rules: Sequence[FieldRule], text: str) -> FieldMatch:
    """Evaluate rules in order; the first one yielding a value wins."""
    if not text or not text.strip():
        return NO_MATCH

    for rule in rules:
        value = rule.apply(text)
        if value is not None:
            return FieldMatch(value, rule.confidence, rule.name)

    return NO_MATCH


# ----------------------------------------------------------------------------
# Normalizers
# ----------------------------------------------------------------------------

def normalize_placa(placa: str) -> str:
    """Upper-case, drop spaces and enforce the ABC-123 / ABC-1234 shape."""
    normalized = re.sub(r'\s+', '', placa.strip().upper())
    if '-' not in normalized and len(normalized) >= 6:
        normalized = normalized[:3] + '-' + normalized[3:]
    return normalized


def normalize_nit(nit: str) -> str:
    """Use periods as group separators: 900,291,461-4 -> 900.291.461-4."""
    return nit.replace(',', '.').strip()


FUEL_TYPES = {
    'corriente': 'Corriente',
    'acpm': 'ACPM',
    'urea': 'Urea',
}


def normalize_fuel_type(tipo: str) -> Optional[str]:
    """Canonical spelling of a known fuel; None for anything outside FUEL_TYPES."""
    return FUEL_TYPES.get(tipo.strip().casefold())


def normalize_voucher(token: str) -> Optional[str]:
    """Upper-case the token; reject punctuation-only captures such as ':'."""
    if not any(ch.isalnum() for ch in token):
        return None
    return token.upper()


# ----------------------------------------------------------------------------
# Cascades
# ----------------------------------------------------------------------------

PLATE = r'([A-Z]{3}\s*-?\s*\d{3,4})'
FUEL = r'(Corriente|ACPM|Urea)'
# ASCII keeps case-insensitive matching from folding look-alikes such as dotless i
FUEL_FLAGS = re.IGNORECASE | re.ASCII
# Letter-only words between a label and the token are part of the label ("No. RESH 81651653")
LABEL_WORDS = r'(?:[A-Za-z]+[ \t]+)*'

PLACA_RULES = (
    FieldRule(
        name='placa_labeled',
        pattern=r'Placa[:\s]+' + PLATE,
        confidence=0.9,
        normalize=normalize_placa,
        example='Placa: HGW - 523',
    ),
    FieldRule(
        name='placa_upper',
        pattern=r'PLACA\s+' + PLATE,
        confidence=0.85,
        normalize=normalize_placa,
        example='PLACA HGW523',
    ),
    FieldRule(
        name='placa_bare',
        pattern=r'\b' + PLATE + r'\b',
        confidence=0.6,
        normalize=normalize_placa,
        example='HGW - 523',
        flags=0,
    ),
)

FECHA_RULES = (
    FieldRule(
        name='fecha_labeled_iso',
        pattern=r'Fecha[:\s]+(20\d{2}[-/]\d{2}[-/]\d{2})',
        confidence=0.9,
        normalize=parse_iso_date,
        example='Fecha: 2024-12-15',
    ),
    FieldRule(
        name='fecha_iso',
        pattern=r'\b(20\d{2}[-/]\d{2}[-/]\d{2})\b',
        confidence=0.85,
        normalize=parse_iso_date,
        example='2024/12/15',
        flags=0,
    ),
    FieldRule(
        name='fecha_day_first',
        pattern=r'\b(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})\b',
        confidence=0.6,
        normalize=parse_day_first_date,
        example='15/12/2024',
        flags=0,
    ),
)

CANTIDAD_RULES = (
    FieldRule(
        name='cantidad_labeled',
        pattern=r'(?:Cantidad|Volumen|Galones)[:\s]+([\d,.]+)\s*(?:Gal|Galones)?',
        confidence=0.9,
        normalize=parse_decimal,
        example='Cantidad: 15,5 Gal',
    ),
    FieldRule(
        name='cantidad_gal_g',
        pattern=r'GAL\s*:G\s*([\d,.]+)',
        confidence=0.88,
        normalize=parse_decimal,
        example='GAL :G 10.366',
    ),
    FieldRule(
        name='cantidad_fuel_label',
        pattern=r'(?:Corriente|Extra|Diesel)[:\s]+([\d,.]+)\s*(?:Gal|Galones)',
        confidence=0.8,
        normalize=parse_decimal,
        example='Corriente: 15.5 Gal',
    ),
)

KILOMETRAJE_RULES = (
    FieldRule(
        name='kilometraje_labeled',
        pattern=r'(?:Kilometraje|Kilometros|Odometro|Odómetro)[:\s]+(\d{1,7})(?:\s*KM)?',
        confidence=0.9,
        normalize=parse_int,
        example='Kilometraje: 125000',
    ),
    FieldRule(
        name='kilometraje_km',
        pattern=r'\bKM[:\s]+(\d{5,7})\b',
        confidence=0.85,
        normalize=parse_int,
        example='KM: 125000',
    ),
)

NUMERO_DE_VALE_RULES = (
    FieldRule(
        name='vale_orden',
        pattern=r'ORDEN\s+DE\s+(?:VENTA|PEDIDO)[:\s]+' + LABEL_WORDS + r'(\S+)',
        confidence=0.95,
        normalize=normalize_voucher,
        example='ORDEN DE VENTA: 4894',
    ),
    FieldRule(
        name='vale_labeled',
        pattern=r'(?:Vale|Recibo|Factura|Numero)[:\s#]+' + LABEL_WORDS + r'(\S+)',
        confidence=0.9,
        normalize=normalize_voucher,
        example='Numero: OP1-51928',
    ),
    FieldRule(
        name='vale_short_label',
        pattern=r'(?:No\.|Num|#)[:\s]*' + LABEL_WORDS + r'(\S+)',
        confidence=0.85,
        normalize=normalize_voucher,
        example='No. RESH 81651653',
    ),
)

NIT_RULES = (
    FieldRule(
        name='nit_labeled',
        pattern=r'NIT[:\s.]+(\d{1,3}(?:[.,]\d{3})*-\d)',
        confidence=0.92,
        normalize=normalize_nit,
        example='NIT: 900.291.461-4',
    ),
    FieldRule(
        name='nit_relaxed',
        pattern=r'NIT[:\s.]*(\d[\d.,]+\d-\d)',
        confidence=0.85,
        normalize=normalize_nit,
        example='NIT900.291.461-4',
    ),
    FieldRule(
        name='nit_bare',
        pattern=r'\b(\d{3}[.,]\d{3}[.,]\d{3}-\d)\b',
        confidence=0.7,
        normalize=normalize_nit,
        example='900.291.461-4',
        flags=0,
    ),
)

TIPO_DE_COMBUSTIBLE_RULES = (
    FieldRule(
        name='combustible_labeled',
        pattern=r'Combustible[:\s]+' + FUEL,
        confidence=0.95,
        normalize=normalize_fuel_type,
        example='Combustible: Corriente',
        flags=FUEL_FLAGS,
    ),
    FieldRule(
        name='combustible_tipo_producto',
        pattern=r'(?:Tipo|Producto)[:\s]+' + FUEL,
        confidence=0.88,
        normalize=normalize_fuel_type,
        example='Producto: ACPM',
        flags=FUEL_FLAGS,
    ),
    FieldRule(
        name='combustible_near_quantity',
        pattern=FUEL + r'[\s:]+\d+[.,]?\d*\s*(?:Gal|Galones|Lts|Litros)',
        confidence=0.78,
        normalize=normalize_fuel_type,
        example='Corriente 15.5 Gal',
        flags=FUEL_FLAGS,
    ),
    FieldRule(
        name='combustible_bare',
        pattern=r'\b' + FUEL + r'\b',
        confidence=0.65,
        normalize=normalize_fuel_type,
        example='UREA',
        flags=FUEL_FLAGS,
    ),
)


# ----------------------------------------------------------------------------
# Structured provider fields
# ----------------------------------------------------------------------------

def _field_confidence(provider_field: ProviderField) -> float:
    return provider_field.confidence if provider_field.confidence is not None else 0.0


def merchant_from_field(provider_field: Optional[ProviderField]) -> FieldMatch:
    if provider_field is None:
        return NO_MATCH
    name = provider_field.content if provider_field.content is not None else provider_field.value
    if name is None:
        return NO_MATCH
    return FieldMatch(str(name), _field_confidence(provider_field), 'provider_merchant_name')


def total_from_field(provider_field: Optional[ProviderField]) -> FieldMatch:
    """Total is accepted as a currency value (with .amount) or a plain number."""
    if provider_field is None:
        return NO_MATCH

    if provider_field.kind == 'currency':
        raw = getattr(provider_field.value, 'amount', provider_field.value)
    elif provider_field.kind in ('float', 'double', 'integer', 'number'):
        raw = provider_field.value
    else:
        return NO_MATCH

    amount = to_decimal(raw)
    if amount is None:
        return NO_MATCH
    return FieldMatch(amount, _field_confidence(provider_field), 'provider_total')


def date_from_field(provider_field: Optional[ProviderField]) -> FieldMatch:
    if provider_field is None or provider_field.kind != 'date':
        return NO_MATCH

    value = provider_field.value
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return NO_MATCH
    return FieldMatch(value, _field_confidence(provider_field), 'provider_transaction_date')


class FieldExtractor:
    """Maps a ProviderAnalysis to ReceiptData plus ConfidenceScores."""

    TEXT_CASCADES: Tuple[Tuple[str, Sequence[FieldRule]], ...] = (
        ('placa', PLACA_RULES),
        ('cantidad', CANTIDAD_RULES),
        ('kilometraje', KILOMETRAJE_RULES),
        ('numero_de_vale', NUMERO_DE_VALE_RULES),
        ('nit', NIT_RULES),
        ('tipo_de_combustible', TIPO_DE_COMBUSTIBLE_RULES),
    )

    def extract(self, analysis: ProviderAnalysis) -> ExtractionResult:
        """
        Derive every receipt field from one provider analysis.

        Args:
            analysis: Structured fields and page lines returned by the provider

        Returns:
            ExtractionResult with data, confidence and the rule that produced
            each field (None where nothing matched)
        """
        document = analysis.document
        matches: Dict[str, FieldMatch] = {
            'nombre_de_la_gasolinera': merchant_from_field(document.get('MerchantName') if document else None),
            'total': total_from_field(document.get('Total') if document else None),
            'fecha_de_tanqueo': date_from_field(document.get('TransactionDate') if document else None),
        }

        text = analysis.full_text

        # Regex date is only a fallback for a missing provider date
        if matches['fecha_de_tanqueo'].value is None:
            matches['fecha_de_tanqueo'] = run_cascade(FECHA_RULES, text)

        for field_name, rules in self.TEXT_CASCADES:
            matches[field_name] = run_cascade(rules, text)

        data = ReceiptData(**{name: m.value for name, m in matches.items()})
        confidence = ConfidenceScores(**{name: m.confidence for name, m in matches.items()})
        rules = {name: m.rule for name, m in matches.items()}

        return ExtractionResult(data=data, confidence=confidence, rules=rules)
