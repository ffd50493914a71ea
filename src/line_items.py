"""
Line Item Data Model
====================
Value types shared by the corrector, the layout parsers, the orchestrator
and the validation tracker.

  ExtractionMethod   which layout strategy produced a candidate
  ValidationStatus   reviewer-owned flags attached to every candidate
  LineItemCandidate  one tentative product row (name / quantity / price)
  ExtractionResult   a whole document: texts, candidates, total, confidence
  ValidationSummary  counts derived from candidate statuses
  ValidationRecord   what a reviewer action did to one candidate
  OcrWord            optional per-word engine output (diagnostics only)

Candidates are built once per extraction run. After that only the
status fields change, and only through ValidationTracker.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


# ─── Enums ────────────────────────────────────────────────────────────────────

class ExtractionMethod(str, Enum):
    """Layout strategy that produced a candidate, in priority order."""
    MERGED_LINE_SPLIT      = "merged_line_split"
    STRUCTURED_SINGLE_LINE = "structured_single_line"
    TWO_LINE               = "two_line"
    VENDOR_SPECIFIC        = "vendor_specific"
    FUZZY_FALLBACK         = "fuzzy_fallback"


class ReviewState(str, Enum):
    NEEDS_REVIEW = "needs_review"
    MARKED       = "marked"
    VALIDATED    = "validated"


# ─── Validation status ────────────────────────────────────────────────────────

@dataclass
class ValidationStatus:
    """Reviewer-assigned flags. Validated wins over marked when both are set."""
    is_validated: bool = False
    is_marked: bool = False
    notes: Optional[str] = None
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None

    @property
    def state(self) -> ReviewState:
        if self.is_validated:
            return ReviewState.VALIDATED
        if self.is_marked:
            return ReviewState.MARKED
        return ReviewState.NEEDS_REVIEW

    def copy(self) -> "ValidationStatus":
        return replace(self)


# ─── Candidates ───────────────────────────────────────────────────────────────

def to_decimal(value: Any) -> Decimal:
    """Coerce int / float / str / Decimal into a Decimal, ValueError otherwise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Price must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Price must be a number, got {value!r}") from e


@dataclass
class LineItemCandidate:
    """
    A tentative product entry pending review.

    price is the line total (not the unit price) whenever both were
    printed; unit_price keeps the unit value for diagnostics.
    """
    name: str
    quantity: int
    price: Decimal
    confidence: float
    extraction_method: ExtractionMethod
    source_span: str = ""
    unit_price: Optional[Decimal] = None
    line_number: Optional[int] = None
    status: ValidationStatus = field(default_factory=ValidationStatus)
    original_values: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.price = to_decimal(self.price)
        if self.unit_price is not None:
            self.unit_price = to_decimal(self.unit_price)
        self.extraction_method = ExtractionMethod(self.extraction_method)
        self.check()

    def check(self):
        """Raise ValueError when any candidate invariant is broken."""
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("Line item name must be a non-empty string")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Quantity must be an integer, got {self.quantity!r}")
        if self.quantity < 1:
            raise ValueError(f"Quantity must be >= 1, got {self.quantity}")
        if not self.price.is_finite() or self.price < 0:
            raise ValueError(f"Price must be >= 0, got {self.price}")
        if not isinstance(self.confidence, (int, float)) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1], got {self.confidence!r}")

    @property
    def state(self) -> ReviewState:
        return self.status.state

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name":             self.name,
            "quantity":         self.quantity,
            "price":            float(self.price),
            "confidence":       round(float(self.confidence), 4),
            "extractionMethod": self.extraction_method.value,
            "isValidated":      self.status.is_validated,
            "isMarked":         self.status.is_marked,
        }
        if self.status.notes:
            data["validationNotes"] = self.status.notes
        return data


# ─── Summaries & records ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class ValidationSummary:
    total: int
    validated: int
    marked: int
    needs_review: int
    is_fully_validated: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total":            self.total,
            "validated":        self.validated,
            "marked":           self.marked,
            "needsReview":      self.needs_review,
            "isFullyValidated": self.is_fully_validated,
        }


def summarize(candidates: Sequence[LineItemCandidate]) -> ValidationSummary:
    """Count every candidate exactly once: validated > marked > needs review."""
    validated = sum(1 for c in candidates if c.state is ReviewState.VALIDATED)
    marked    = sum(1 for c in candidates if c.state is ReviewState.MARKED)
    total     = len(candidates)
    return ValidationSummary(
        total=total,
        validated=validated,
        marked=marked,
        needs_review=total - validated - marked,
        is_fully_validated=validated == total,
    )


@dataclass(frozen=True)
class ValidationRecord:
    """Outcome of one reviewer action on one candidate."""
    index: int
    status: ValidationStatus
    original: Optional[Dict[str, Any]] = None
    corrected: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class OcrWord:
    """Per-word engine output. Only feeds diagnostics."""
    text: str
    confidence: float
    bbox: Optional[List[List[float]]] = None


# ─── Result ───────────────────────────────────────────────────────────────────

@dataclass
class ExtractionResult:
    raw_text: str
    corrected_text: str
    candidates: List[LineItemCandidate] = field(default_factory=list)
    total_amount: Optional[Decimal] = None
    overall_confidence: float = 0.0
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def validation_summary(self) -> ValidationSummary:
        return summarize(self.candidates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawText":           self.raw_text,
            "correctedText":     self.corrected_text,
            "products":          [c.to_dict() for c in self.candidates],
            "totalAmount":       float(self.total_amount) if self.total_amount is not None else None,
            "confidence":        round(self.overall_confidence, 4),
            "validationSummary": self.validation_summary.to_dict(),
        }
