"""
Base Parser
===========
Shared pieces for every layout strategy:
  - DocumentContext  (corrected lines + vendors with keyword evidence)
  - ParseOutcome     (candidates + the line indices they consumed)
  - name validation  (clean_name)
  - candidate construction

Subclasses implement parse(context, index). Returning None means
"no match" and is ordinary control flow; the orchestrator then tries the
next strategy.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from loguru import logger

from line_items import ExtractionMethod, LineItemCandidate
from rule_set import RuleSet, VendorProfile


# ─── Shared compiled patterns ─────────────────────────────────────────────────

_SUMMARY_WORDS = re.compile(
    r'\b(?:sub\s*total|subtotal|total|grand|tax|pajak|ppn|cash|tunai|'
    r'kembali(?:an)?|change|jumlah|pembulatan|rounding|diskon|discount)\b',
    re.IGNORECASE,
)

# amounts, @ markers and "1 x" quantity markers never belong in a name
_NAME_NOISE = re.compile(r'\d[.,]\d{3}|@|\d\s*[xX](?![A-Za-z])')

_NAME_CHARS = re.compile(r"^[\w\s.&'/()%+\-]+$")
_HAS_LETTER = re.compile(r'[A-Za-z]')


def clean_name(raw: Optional[str]) -> Optional[str]:
    """
    Normalise a product name, or return None when it cannot be one.

    Rejected: no letters, a stray one-character leading token ("R ES TEKLEK"),
    summary keywords, embedded amounts or quantity markers, odd symbols.
    """
    if not raw:
        return None
    name = ' '.join(raw.split()).strip(' :-=')
    if len(name) < 2 or not _HAS_LETTER.search(name):
        return None
    if len(name.split()[0]) < 2:
        return None
    if _SUMMARY_WORDS.search(name) or _NAME_NOISE.search(name):
        return None
    if not _NAME_CHARS.match(name):
        return None
    return name


# ─── Parse plumbing ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DocumentContext:
    """Everything a strategy may look at besides the current line."""
    lines: Tuple[str, ...]
    vendors: Tuple[VendorProfile, ...] = ()

    def line(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.lines):
            return self.lines[index]
        return None


@dataclass
class ParseOutcome:
    candidates: List[LineItemCandidate]
    consumed: Tuple[int, ...] = field(default_factory=tuple)


class BaseParser:
    """
    Abstract layout strategy. Subclasses implement parse().

    `name` is the strategy key used by ParserFactory and diagnostics.
    """

    name: str = "base"
    method: Optional[ExtractionMethod] = None

    def __init__(self, rule_set: RuleSet):
        self.rules = rule_set
        self.bands = rule_set.scoring.bands

    # ── Must be overridden ────────────────────────────────────────────────────

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        """Try to turn context.lines[index] into candidates."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement parse()"
        )

    # ── Shared helpers ────────────────────────────────────────────────────────

    def _build_candidate(
        self,
        name: str,
        quantity: int,
        price: Decimal,
        confidence: float,
        source: str,
        line_number: Optional[int] = None,
        unit_price: Optional[Decimal] = None,
        method: Optional[ExtractionMethod] = None,
    ) -> Optional[LineItemCandidate]:
        """Build a candidate; invariant violations mean no candidate."""
        try:
            candidate = LineItemCandidate(
                name=name,
                quantity=quantity,
                price=price,
                confidence=round(max(0.0, min(1.0, confidence)), 4),
                extraction_method=method or self.method,
                source_span=source,
                unit_price=unit_price,
                line_number=line_number,
            )
        except ValueError as e:
            logger.debug(f"[{self.__class__.__name__}] rejected {source!r}: {e}")
            return None

        logger.debug(
            f"[{self.__class__.__name__}] {candidate.name!r} "
            f"qty={candidate.quantity} price={candidate.price} "
            f"confidence={candidate.confidence:.2f}"
        )
        return candidate

    @staticmethod
    def _consistent(quantity: int, unit: Optional[Decimal], total: Decimal) -> bool:
        return unit is not None and unit * quantity == total
