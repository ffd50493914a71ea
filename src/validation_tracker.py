"""
Validation Tracker
==================
Reviewer actions over the candidates of one ExtractionResult.

State per candidate:

    needs review ──mark──▶ marked
         │                   ▲ │
      validate          mark │ │ validate
         ▼                   │ ▼
     validated ◀─────────────┘
         any ──reset──▶ needs review

Only explicit calls change a status. Statuses are mutated in place on
the result passed in; an out-of-range index raises IndexError before
anything is touched.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from line_items import (
    ExtractionResult,
    ValidationRecord,
    ValidationStatus,
    ValidationSummary,
    summarize,
    to_decimal,
)


EDITABLE_FIELDS = ("name", "quantity", "price")


class ValidationTracker:
    """
    Applies reviewer decisions to line-item candidates.

    Args:
        clock: Callable returning the current datetime (injectable for tests)
        reviewer: Reviewer id stamped into validated_by when the status
                  carries none
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        reviewer: Optional[str] = None,
    ):
        self.clock = clock or datetime.now
        self.reviewer = reviewer

    # ── Single candidate ──────────────────────────────────────────────────────

    def validate(self, result: ExtractionResult, index: int, status: ValidationStatus) -> ValidationRecord:
        """Replace every status field of one candidate."""
        candidate = result.candidates[self._check_index(result, index)]

        new_status = status.copy()
        if new_status.is_validated:
            if new_status.validated_at is None:
                new_status.validated_at = self.clock()
            if new_status.validated_by is None:
                new_status.validated_by = self.reviewer
        candidate.status = new_status

        logger.debug(
            f"[ValidationTracker] item {index} '{candidate.name}' → {new_status.state.value}"
        )
        return ValidationRecord(index=index, status=new_status.copy())

    def mark(
        self,
        result: ExtractionResult,
        index: int,
        is_marked: bool,
        notes: Optional[str] = None,
    ) -> ValidationRecord:
        """Flag (or unflag) one candidate for attention; is_validated is kept."""
        candidate = result.candidates[self._check_index(result, index)]

        candidate.status.is_marked = bool(is_marked)
        if notes is not None:
            candidate.status.notes = notes

        logger.debug(
            f"[ValidationTracker] item {index} '{candidate.name}' marked={candidate.status.is_marked}"
        )
        return ValidationRecord(index=index, status=candidate.status.copy())

    def edit(self, result: ExtractionResult, index: int, overrides: Dict[str, Any]) -> ValidationRecord:
        """
        Reviewer correction of name / quantity / price.

        The first edit snapshots the extracted values into original_values.
        Overrides are checked before anything changes, so a rejected edit
        leaves the candidate untouched.

        Raises:
            IndexError: index out of range
            ValueError: unknown field or a value breaking a candidate invariant
        """
        candidate = result.candidates[self._check_index(result, index)]

        unknown = set(overrides) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot edit fields {sorted(unknown)}; editable: {list(EDITABLE_FIELDS)}")

        original = {
            "name": candidate.name,
            "quantity": candidate.quantity,
            "price": candidate.price,
        }
        updated = dict(original)
        updated.update(overrides)
        updated["price"] = to_decimal(updated["price"])
        if isinstance(updated["name"], str):
            updated["name"] = updated["name"].strip()

        # check on a scratch copy first
        checked = candidate.__class__(
            name=updated["name"],
            quantity=updated["quantity"],
            price=updated["price"],
            confidence=candidate.confidence,
            extraction_method=candidate.extraction_method,
        )

        if candidate.original_values is None:
            candidate.original_values = original
        candidate.name = checked.name
        candidate.quantity = checked.quantity
        candidate.price = checked.price

        logger.debug(f"[ValidationTracker] item {index} edited: {original} → {updated}")
        return ValidationRecord(
            index=index,
            status=candidate.status.copy(),
            original=dict(candidate.original_values),
            corrected=updated,
        )

    # ── Bulk actions ──────────────────────────────────────────────────────────

    def validate_all(
        self,
        result: ExtractionResult,
        is_valid: bool,
        notes: Optional[str] = None,
    ) -> List[ValidationRecord]:
        """Set is_validated on every candidate; marks are kept."""
        now = self.clock()
        records = []
        for i, candidate in enumerate(result.candidates):
            status = candidate.status
            status.is_validated = bool(is_valid)
            if notes is not None:
                status.notes = notes
            if status.is_validated:
                status.validated_at = now
                status.validated_by = status.validated_by or self.reviewer
            else:
                status.validated_at = None
                status.validated_by = None
            records.append(ValidationRecord(index=i, status=status.copy()))

        logger.info(
            f"[ValidationTracker] {len(records)} items set validated={bool(is_valid)}"
        )
        return records

    def mark_all(self, result: ExtractionResult, is_marked: bool) -> List[ValidationRecord]:
        records = []
        for i, candidate in enumerate(result.candidates):
            candidate.status.is_marked = bool(is_marked)
            records.append(ValidationRecord(index=i, status=candidate.status.copy()))
        logger.info(f"[ValidationTracker] {len(records)} items set marked={bool(is_marked)}")
        return records

    def reset_validation(self, result: ExtractionResult) -> List[ValidationRecord]:
        """Every candidate back to needs review (notes and stamps cleared)."""
        records = []
        for i, candidate in enumerate(result.candidates):
            candidate.status = ValidationStatus()
            records.append(ValidationRecord(index=i, status=candidate.status.copy()))
        logger.info(f"[ValidationTracker] {len(records)} items reset")
        return records

    # ── Queries ───────────────────────────────────────────────────────────────

    @staticmethod
    def summary(result: ExtractionResult) -> ValidationSummary:
        return summarize(result.candidates)

    @staticmethod
    def _check_index(result: ExtractionResult, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexError(f"Item index must be an integer, got {index!r}")
        if index < 0 or index >= len(result.candidates):
            raise IndexError(
                f"Item index {index} out of range (0..{len(result.candidates) - 1})"
            )
        return index
