"""
Line Classifier
===============
Decides, per corrected line, whether layout strategies may look at it.

  item  the line already has a structured item layout (never skipped)
  skip  header (date / time / cashier / guest), footer boilerplate,
        summary label (subtotal / tax / total / rounding / cash / change)
        or a purely numeric line
  keep  everything else

Patterns come from the RuleSet `line_classes` section.
"""

from enum import Enum
from typing import Optional

from loguru import logger

from extractor.structured_parser import StructuredLineParser
from rule_set import RuleSet


class LineKind(str, Enum):
    ITEM = "item"
    KEEP = "keep"
    SKIP = "skip"


class LineClassifier:
    """Per-line skip / keep classification."""

    def __init__(self, rule_set: RuleSet):
        self.patterns = rule_set.line_classes

    def classify(self, line: str) -> LineKind:
        if StructuredLineParser.matches_layout(line):
            return LineKind.ITEM
        reason = self.skip_reason(line)
        if reason is not None:
            logger.debug(f"[LineClassifier] skip ({reason}): {line!r}")
            return LineKind.SKIP
        return LineKind.KEEP

    def skip_reason(self, line: str) -> Optional[str]:
        """Which skip class a line falls into, or None."""
        text = line.strip()
        if not text:
            return "empty"
        if self.patterns.numeric.match(text):
            return "numeric"
        label = self.label_kind(text)
        if label is not None:
            return label
        return None

    def label_kind(self, line: str) -> Optional[str]:
        """'header', 'footer' or 'summary' when the line is a known label."""
        for kind, patterns in (
            ("header", self.patterns.header),
            ("footer", self.patterns.footer),
            ("summary", self.patterns.summary),
        ):
            if any(p.search(line) for p in patterns):
                return kind
        return None

    def is_label(self, line: str) -> bool:
        return self.label_kind(line) is not None
