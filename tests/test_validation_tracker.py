"""
Tests for reviewer actions and validation summaries
"""

import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from line_items import (
    ExtractionMethod,
    ExtractionResult,
    LineItemCandidate,
    ReviewState,
    ValidationStatus,
)
from validation_tracker import ValidationTracker


FIXED_NOW = datetime(2024, 9, 9, 12, 30)


def _candidate(name, quantity, price):
    return LineItemCandidate(
        name=name,
        quantity=quantity,
        price=price,
        confidence=0.95,
        extraction_method=ExtractionMethod.STRUCTURED_SINGLE_LINE,
    )


@pytest.fixture
def result():
    return ExtractionResult(
        raw_text="",
        corrected_text="",
        candidates=[
            _candidate("ES TEKLEK", 1, 6364),
            _candidate("MIE GACOAN", 1, 10000),
            _candidate("SIOMAY AYAM", 1, 9091),
        ],
    )


@pytest.fixture
def tracker():
    return ValidationTracker(clock=lambda: FIXED_NOW, reviewer="cashier-01")


def _statuses(result):
    return [c.status.copy() for c in result.candidates]


# ─── Single candidate ─────────────────────────────────────────────────────────

def test_validate_sets_status(tracker, result):
    record = tracker.validate(result, 1, ValidationStatus(is_validated=True, notes="ok"))

    status = result.candidates[1].status
    assert status.is_validated
    assert status.notes == "ok"
    assert status.validated_at == FIXED_NOW
    assert status.validated_by == "cashier-01"
    assert record.index == 1
    assert record.status.state is ReviewState.VALIDATED


def test_validate_keeps_given_timestamp(tracker, result):
    stamp = datetime(2024, 1, 1)
    tracker.validate(result, 0, ValidationStatus(is_validated=True, validated_at=stamp))
    assert result.candidates[0].status.validated_at == stamp


@pytest.mark.parametrize("index", [-1, 3, 99])
def test_bad_index_raises_without_mutation(tracker, result, index):
    before = _statuses(result)
    with pytest.raises(IndexError):
        tracker.validate(result, index, ValidationStatus(is_validated=True))
    with pytest.raises(IndexError):
        tracker.mark(result, index, True)
    with pytest.raises(IndexError):
        tracker.edit(result, index, {"quantity": 2})
    assert _statuses(result) == before


def test_mark_keeps_validation(tracker, result):
    tracker.validate(result, 0, ValidationStatus(is_validated=True))
    tracker.mark(result, 0, True, notes="check price")

    status = result.candidates[0].status
    assert status.is_validated
    assert status.is_marked
    assert status.notes == "check price"
    # validated wins over marked
    assert result.candidates[0].state is ReviewState.VALIDATED


def test_marked_to_validated_and_back(tracker, result):
    tracker.mark(result, 2, True)
    assert result.candidates[2].state is ReviewState.MARKED

    tracker.validate(result, 2, ValidationStatus(is_validated=True, is_marked=True))
    assert result.candidates[2].state is ReviewState.VALIDATED

    tracker.validate(result, 2, ValidationStatus(is_validated=False, is_marked=True))
    assert result.candidates[2].state is ReviewState.MARKED


# ─── Bulk actions ─────────────────────────────────────────────────────────────

def test_validate_all(tracker, result):
    tracker.mark(result, 0, True)
    records = tracker.validate_all(result, True, notes="checked")

    assert len(records) == 3
    assert all(c.status.is_validated for c in result.candidates)
    assert all(c.status.validated_at == FIXED_NOW for c in result.candidates)
    assert result.candidates[0].status.is_marked
    assert tracker.summary(result).is_fully_validated


def test_validate_all_false_clears_stamps(tracker, result):
    tracker.validate_all(result, True)
    tracker.validate_all(result, False)
    assert all(c.status.validated_at is None for c in result.candidates)
    assert tracker.summary(result).needs_review == 3


def test_mark_all_and_reset(tracker, result):
    tracker.mark_all(result, True)
    assert tracker.summary(result).marked == 3

    tracker.reset_validation(result)
    assert all(c.status == ValidationStatus() for c in result.candidates)
    assert tracker.summary(result).needs_review == 3


# ─── Summary ──────────────────────────────────────────────────────────────────

def test_summary_counts_each_candidate_once(tracker, result):
    tracker.validate(result, 0, ValidationStatus(is_validated=True, is_marked=True))
    tracker.mark(result, 1, True)

    summary = tracker.summary(result)
    assert summary.total == 3
    assert summary.validated == 1
    assert summary.marked == 1
    assert summary.needs_review == 1
    assert summary.validated + summary.marked + summary.needs_review == summary.total
    assert not summary.is_fully_validated


def test_summary_of_empty_result(tracker):
    summary = tracker.summary(ExtractionResult(raw_text="", corrected_text=""))
    assert summary.total == 0
    assert summary.needs_review == 0
    assert summary.is_fully_validated


# ─── Edits ────────────────────────────────────────────────────────────────────

def test_edit_keeps_original_snapshot(tracker, result):
    record = tracker.edit(result, 2, {"quantity": 2, "price": "18182"})
    tracker.edit(result, 2, {"name": "SIOMAY UDANG"})

    candidate = result.candidates[2]
    assert candidate.quantity == 2
    assert candidate.price == Decimal("18182")
    assert candidate.name == "SIOMAY UDANG"
    assert candidate.original_values == {
        "name": "SIOMAY AYAM", "quantity": 1, "price": Decimal("9091"),
    }
    assert record.corrected["quantity"] == 2


@pytest.mark.parametrize("overrides", [
    {"quantity": 0},
    {"quantity": "two"},
    {"price": -5},
    {"name": "   "},
    {"colour": "red"},
])
def test_rejected_edit_leaves_candidate_untouched(tracker, result, overrides):
    with pytest.raises(ValueError):
        tracker.edit(result, 0, overrides)

    candidate = result.candidates[0]
    assert (candidate.name, candidate.quantity, candidate.price) == ("ES TEKLEK", 1, Decimal("6364"))
    assert candidate.original_values is None
