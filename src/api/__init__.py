"""
API Package
Contains FastAPI routes and models
"""

from api.routes import router
from api.models import (
    ExtractRequest,
    ExtractionResponse,
    CorrectionResponse,
    ValidationRequest,
    ValidationResponse,
    RulesResponse,
    HealthResponse,
    ErrorResponse
)

__all__ = [
    'router',
    'ExtractRequest',
    'ExtractionResponse',
    'CorrectionResponse',
    'ValidationRequest',
    'ValidationResponse',
    'RulesResponse',
    'HealthResponse',
    'ErrorResponse'
]
