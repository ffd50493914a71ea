"""
Extractor package: layout strategies that turn corrected receipt lines
into line-item candidates.

Strategies, in priority order: merged-line splitter, structured single
line, two-line, vendor-specific columnar layout, fuzzy fallback. The
LineClassifier decides which lines they may look at.

Usage (via factory)
-------------------
from extractor import ParserFactory
factory = ParserFactory(rule_set)
chain   = factory.chain()
"""

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome
from extractor.factory import ParserFactory
from extractor.line_classifier import LineClassifier, LineKind

__all__ = [
    "BaseParser",
    "DocumentContext",
    "ParseOutcome",
    "ParserFactory",
    "LineClassifier",
    "LineKind",
]
