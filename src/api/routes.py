"""
API Routes - All API endpoints
Line-item extraction, text correction and stateless review actions.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from loguru import logger

from api.models import (
    CorrectionRequest,
    CorrectionResponse,
    ErrorResponse,
    ExtractRequest,
    ExtractionResponse,
    LineItemModel,
    RulesResponse,
    ValidationRecordModel,
    ValidationRequest,
    ValidationResponse,
    ValidationSummaryModel,
)
from extraction_orchestrator import ExtractionOrchestrator
from line_items import (
    ExtractionResult,
    LineItemCandidate,
    OcrWord,
    ValidationRecord,
    ValidationStatus,
)
from rule_set import RuleSet
from utils import load_config
from validation_tracker import ValidationTracker

# Create router
router = APIRouter()

# Rules are loaded once and shared read-only by every request
config = load_config()
rule_set = RuleSet.from_yaml(config['rules']['path'])
orchestrator = ExtractionOrchestrator(rule_set)
corrector = orchestrator.corrector
INCLUDE_DIAGNOSTICS = bool(config['api'].get('include_diagnostics', True))


# ==================== UTILITY FUNCTIONS ====================

def _plain(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Decimals → floats so the dict is JSON serialisable."""
    if values is None:
        return None
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in values.items()}


def to_response(result: ExtractionResult, include_diagnostics: bool = INCLUDE_DIAGNOSTICS) -> ExtractionResponse:
    """ExtractionResult → wire model."""
    summary = result.validation_summary
    return ExtractionResponse(
        status="success",
        raw_text=result.raw_text,
        corrected_text=result.corrected_text,
        products=[
            LineItemModel(
                name=c.name,
                quantity=c.quantity,
                price=float(c.price),
                confidence=round(float(c.confidence), 4),
                extraction_method=c.extraction_method.value,
                is_validated=c.status.is_validated,
                is_marked=c.status.is_marked,
                validation_notes=c.status.notes,
                validated_at=c.status.validated_at,
                validated_by=c.status.validated_by,
                original_values=_plain(c.original_values),
            )
            for c in result.candidates
        ],
        total_amount=float(result.total_amount) if result.total_amount is not None else None,
        confidence=round(result.overall_confidence, 4),
        validation_summary=ValidationSummaryModel(
            total=summary.total,
            validated=summary.validated,
            marked=summary.marked,
            needs_review=summary.needs_review,
            is_fully_validated=summary.is_fully_validated,
        ),
        diagnostics=result.diagnostics if include_diagnostics else None,
    )


def from_payload(payload: ExtractionResponse) -> ExtractionResult:
    """
    Wire model → ExtractionResult.

    Raises ValueError when an item breaks a candidate invariant.
    """
    candidates = [
        LineItemCandidate(
            name=item.name,
            quantity=item.quantity,
            price=Decimal(str(item.price)),
            confidence=item.confidence,
            extraction_method=item.extraction_method,
            status=ValidationStatus(
                is_validated=item.is_validated,
                is_marked=item.is_marked,
                notes=item.validation_notes,
                validated_at=item.validated_at,
                validated_by=item.validated_by,
            ),
            original_values=item.original_values,
        )
        for item in payload.products
    ]
    return ExtractionResult(
        raw_text=payload.raw_text,
        corrected_text=payload.corrected_text,
        candidates=candidates,
        total_amount=Decimal(str(payload.total_amount)) if payload.total_amount is not None else None,
        overall_confidence=payload.confidence,
        diagnostics=payload.diagnostics or {},
    )


def _record_model(record: ValidationRecord) -> ValidationRecordModel:
    return ValidationRecordModel(
        index=record.index,
        state=record.status.state.value,
        original=_plain(record.original),
        corrected=_plain(record.corrected),
    )


def _require_index(request: ValidationRequest) -> int:
    if request.index is None:
        raise ValueError(f"Action '{request.action}' needs an item index")
    return request.index


def apply_action(tracker: ValidationTracker, result: ExtractionResult,
                 request: ValidationRequest) -> List[ValidationRecord]:
    """Dispatch one reviewer action onto the tracker."""
    action = request.action

    if action == "validate":
        status = ValidationStatus(
            is_validated=True if request.is_validated is None else request.is_validated,
            is_marked=bool(request.is_marked),
            notes=request.notes,
        )
        return [tracker.validate(result, _require_index(request), status)]

    if action == "mark":
        is_marked = True if request.is_marked is None else request.is_marked
        return [tracker.mark(result, _require_index(request), is_marked, request.notes)]

    if action == "validate_all":
        is_valid = True if request.is_validated is None else request.is_validated
        return tracker.validate_all(result, is_valid, request.notes)

    if action == "mark_all":
        is_marked = True if request.is_marked is None else request.is_marked
        return tracker.mark_all(result, is_marked)

    if action == "reset":
        return tracker.reset_validation(result)

    if action == "edit":
        if not request.overrides:
            raise ValueError("Action 'edit' needs overrides")
        return [tracker.edit(result, _require_index(request), request.overrides)]

    raise ValueError(f"Unknown action '{action}'")


# ==================== API ENDPOINTS ====================

@router.post("/extract", response_model=ExtractionResponse, tags=["Extraction"])
async def extract_line_items(request: ExtractRequest):
    """
    **Extract line items from raw OCR text**

    Corrects OCR errors, then recovers product name / quantity / price
    from every item line.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/v1/extract \\
      -H "Content-Type: application/json" \\
      -d '{"rawText": "ES TEKLEK 1 x @ 6,364 6,364", "engineConfidence": 92}'
    ```
    """
    try:
        words = [
            OcrWord(text=w.text, confidence=w.confidence, bbox=w.bbox)
            for w in request.words or []
        ]
        result = orchestrator.extract(request.raw_text, request.engine_confidence, words or None)
        return to_response(result)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Extraction error: {e}")
        logger.exception("Full traceback:")
        raise HTTPException(500, str(e))


@router.post("/correct", response_model=CorrectionResponse, tags=["Extraction"])
async def correct_text(request: CorrectionRequest):
    """
    **Correct raw OCR text**

    Runs only the lexical corrector and reports which lines changed.
    """
    try:
        corrected = corrector.correct(request.text)
        report = corrector.get_correction_report(request.text.split('\n'))
        return CorrectionResponse(
            status="success",
            original=request.text,
            corrected=corrected,
            report=report,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Correction error: {e}")
        raise HTTPException(500, str(e))


@router.post(
    "/validation/apply",
    response_model=ValidationResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Validation"],
)
async def apply_validation(request: ValidationRequest):
    """
    **Apply a reviewer action to an extraction payload**

    Stateless: send the payload returned by /extract plus one action
    (validate, mark, validate_all, mark_all, reset, edit) and get the
    updated payload back.
    """
    try:
        result = from_payload(request.result)
        tracker = ValidationTracker(reviewer=request.reviewer)
        records = apply_action(tracker, result, request)

        logger.info(
            f"Validation action '{request.action}' applied to {len(records)} item(s)"
        )
        return ValidationResponse(
            status="success",
            result=to_response(result, include_diagnostics=request.result.diagnostics is not None),
            records=[_record_model(r) for r in records],
        )

    except HTTPException:
        raise
    except IndexError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(422, str(e))
    except Exception as e:
        logger.error(f"Validation error: {e}")
        logger.exception("Full traceback:")
        raise HTTPException(500, str(e))


@router.get("/rules", response_model=RulesResponse, tags=["Rules"])
async def describe_rules():
    """**Summary of the loaded rule set** (version, section sizes, vendors)."""
    return RulesResponse(status="success", rules=rule_set.describe())
