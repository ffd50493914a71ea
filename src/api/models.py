"""
API Models: Request and Response schemas
Using Pydantic for automatic validation and documentation

Wire format is camelCase (rawText, extractionMethod, isValidated ...);
every model also accepts its snake_case field names on input.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ─── Extraction Models ────────────────────────────────────────────────────────

class OCRWord(_CamelModel):
    """One recognised word with its engine confidence (0–1 or 0–100)."""
    text: str           = Field(...,  description="Recognised text")
    confidence: float   = Field(...,  description="Engine confidence", ge=0, le=100)
    bbox: Optional[List[List[float]]] = Field(None, description="Bounding box coordinates")


class ExtractRequest(_CamelModel):
    """Raw OCR output of one receipt."""
    raw_text: str = Field("", alias="rawText", description="Raw OCR text, one receipt line per line")
    engine_confidence: float = Field(
        0.0, alias="engineConfidence", ge=0, le=100,
        description="Overall OCR engine confidence (0–1 or 0–100)",
    )
    words: Optional[List[OCRWord]] = Field(None, description="Optional per-word engine output")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "rawText": "ES TEKLEK 1 x @ 6,364 6,364\nMIE GACOAN 1 x @ 10,000 10,000",
                "engineConfidence": 92.5,
            }
        },
    )


class LineItemModel(_CamelModel):
    """One line-item candidate with its review status."""
    name: str
    quantity: int            = Field(..., ge=1)
    price: float             = Field(..., ge=0, description="Line total")
    confidence: float        = Field(..., ge=0, le=1)
    extraction_method: str   = Field(..., alias="extractionMethod")
    is_validated: bool       = Field(False, alias="isValidated")
    is_marked: bool          = Field(False, alias="isMarked")
    validation_notes: Optional[str]      = Field(None, alias="validationNotes")
    validated_at: Optional[datetime]     = Field(None, alias="validatedAt")
    validated_by: Optional[str]          = Field(None, alias="validatedBy")
    original_values: Optional[Dict[str, Any]] = Field(None, alias="originalValues")


class ValidationSummaryModel(_CamelModel):
    total: int              = 0
    validated: int          = 0
    marked: int             = 0
    needs_review: int       = Field(0, alias="needsReview")
    is_fully_validated: bool = Field(True, alias="isFullyValidated")


class ExtractionResponse(_CamelModel):
    """Line items recovered from one receipt."""
    status: str                  = Field("success", description="Response status")
    raw_text: str                = Field(..., alias="rawText")
    corrected_text: str          = Field(..., alias="correctedText")
    products: List[LineItemModel] = Field(default_factory=list)
    total_amount: Optional[float] = Field(None, alias="totalAmount")
    confidence: float            = Field(..., ge=0, le=1, description="Overall confidence")
    validation_summary: ValidationSummaryModel = Field(
        default_factory=ValidationSummaryModel, alias="validationSummary"
    )
    diagnostics: Optional[Dict[str, Any]] = Field(None, description="Per-line decisions")


# ─── Correction Models ────────────────────────────────────────────────────────

class CorrectionRequest(_CamelModel):
    text: str = Field(..., description="Raw OCR text")


class CorrectionResponse(_CamelModel):
    status: str     = Field("success", description="Response status")
    original: str
    corrected: str
    report: Dict[str, Any] = Field(default_factory=dict, description="Per-line corrections")


# ─── Validation Models ────────────────────────────────────────────────────────

class ValidationRequest(_CamelModel):
    """A reviewer action applied to a previously returned extraction payload."""
    result: ExtractionResponse
    action: Literal["validate", "mark", "validate_all", "mark_all", "reset", "edit"]
    index: Optional[int]         = Field(None, description="Item index (single-item actions)")
    is_validated: Optional[bool] = Field(None, alias="isValidated")
    is_marked: Optional[bool]    = Field(None, alias="isMarked")
    notes: Optional[str]         = None
    overrides: Optional[Dict[str, Any]] = Field(None, description="name / quantity / price")
    reviewer: Optional[str]      = None


class ValidationRecordModel(_CamelModel):
    index: int
    state: str
    original: Optional[Dict[str, Any]]  = None
    corrected: Optional[Dict[str, Any]] = None


class ValidationResponse(_CamelModel):
    status: str = Field("success", description="Response status")
    result: ExtractionResponse
    records: List[ValidationRecordModel] = Field(default_factory=list)


# ─── Rules, Health & Error Models ─────────────────────────────────────────────

class RulesResponse(_CamelModel):
    status: str = Field("success", description="Response status")
    rules: Dict[str, Any] = Field(..., description="Loaded rule set summary")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str  = Field("healthy",                 description="Health status")
    service: str = Field("receipt-line-items-api",  description="Service name")
    version: str = Field("1.0.0",                   description="API version")


class ErrorResponse(BaseModel):
    """Error response."""
    status: str           = Field("error", description="Response status")
    error: str            = Field(...,     description="Error type")
    message: str          = Field(...,     description="Error message")
    detail: Optional[str] = Field(None,    description="Additional details")
