"""
Two-Line Parser
===============
A bare product name on one line, its quantity row on the next:

    ES TEKLEK
    1 x @ 6,364    6,364

The pair becomes one candidate priced at the row total; both lines are
consumed.
"""

import re
from typing import Optional

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome, clean_name
from extractor.line_classifier import LineClassifier
from line_items import ExtractionMethod
from rule_set import RuleSet
from utils import expand_amount, parse_amount


_NAME_LINE = re.compile(r"^[A-Za-z][A-Za-z\s&'\-]*:?$")

_QTY_LINE = re.compile(expand_amount(
    r'^(?P<qty>\d{1,3})\s*[xX]\s*@\s*(?P<unit>{num})(?:\s*=\s*|\s+)(?P<total>{num})$'
))

_MIN_NAME_LEN = 3
_MAX_NAME_LEN = 49


class TwoLineParser(BaseParser):
    """NAME line followed by a QTY x @ PRICE TOTAL line."""

    name = "two_line"
    method = ExtractionMethod.TWO_LINE

    def __init__(self, rule_set: RuleSet):
        super().__init__(rule_set)
        self.classifier = LineClassifier(rule_set)

    def looks_like_name(self, line: str) -> bool:
        text = line.strip()
        if not (_MIN_NAME_LEN <= len(text) <= _MAX_NAME_LEN):
            return False
        if not _NAME_LINE.match(text):
            return False
        return not self.classifier.is_label(text)

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        line = context.lines[index]
        following = context.line(index + 1)
        if following is None or not self.looks_like_name(line):
            return None

        m = _QTY_LINE.match(following.strip())
        if not m:
            return None

        name = clean_name(line)
        qty = int(m.group('qty'))
        total = parse_amount(m.group('total'))
        if name is None or total is None:
            return None

        candidate = self._build_candidate(
            name=name,
            quantity=qty,
            price=total,
            confidence=self.bands.two_line,
            source=f"{line}\n{following}",
            line_number=index,
            unit_price=parse_amount(m.group('unit')),
        )
        if candidate is None:
            return None
        return ParseOutcome(candidates=[candidate], consumed=(index, index + 1))
