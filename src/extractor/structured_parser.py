"""
Structured Single-Line Parser
=============================
Handles complete item rows printed on one line:

    ES TEKLEK: 1 x @ 6,364 = 6,364
    ES TEKLEK 1 x @ 6,364 6,364
    SIOMAY AYAM : 1 9,091 9,091
    TEA 2 x @ 4,546
    2 x TEA 9,092

When a unit price and a total are both printed, the right-most amount
(the total) is the price.
"""

import re
from typing import Optional

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome, clean_name
from line_items import ExtractionMethod, LineItemCandidate
from utils import expand_amount, parse_amount


_SEP_TO_QTY = r'(?:\s*:\s*|\s+)'
_UNIT_TO_TOTAL = r'(?:\s*=\s*|\s+)'

# (variant name, pattern); first full match wins
_VARIANTS = [
    ("name_qty_x_unit_total", re.compile(expand_amount(
        r'^(?P<name>.+?)' + _SEP_TO_QTY +
        r'(?P<qty>\d{1,3})\s*[xX]\s*@?\s*(?P<unit>{num})' + _UNIT_TO_TOTAL + r'(?P<total>{num})$'
    ))),
    ("name_colon_qty_unit_total", re.compile(expand_amount(
        r'^(?P<name>.+?)\s*:\s*'
        r'(?P<qty>\d{1,3})\s+(?P<unit>{num})' + _UNIT_TO_TOTAL + r'(?P<total>{num})$'
    ))),
    ("name_qty_x_unit", re.compile(expand_amount(
        r'^(?P<name>.+?)' + _SEP_TO_QTY +
        r'(?P<qty>\d{1,3})\s*[xX]\s*@\s*(?P<unit>{num})$'
    ))),
    ("qty_x_name_total", re.compile(expand_amount(
        r'^(?P<qty>\d{1,3})\s*[xX]\s+(?P<name>[A-Za-z].*?)' + _SEP_TO_QTY + r'(?P<total>{num})$'
    ))),
]


class StructuredLineParser(BaseParser):
    """NAME [:] QTY [x] [@] PRICE [=] TOTAL and its token-order variants."""

    name = "structured"
    method = ExtractionMethod.STRUCTURED_SINGLE_LINE

    @staticmethod
    def matches_layout(line: str) -> bool:
        """True when any structured variant matches, before name validation."""
        text = line.strip()
        return any(pattern.match(text) for _, pattern in _VARIANTS)

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        candidate = self.parse_text(context.lines[index], line_number=index)
        if candidate is None:
            return None
        return ParseOutcome(candidates=[candidate], consumed=(index,))

    def parse_text(
        self,
        text: str,
        line_number: Optional[int] = None,
        method: Optional[ExtractionMethod] = None,
    ) -> Optional[LineItemCandidate]:
        """Parse one line or merged-line segment."""
        text = ' '.join(text.split())
        for variant, pattern in _VARIANTS:
            m = pattern.match(text)
            if not m:
                continue

            name = clean_name(m.group('name'))
            if name is None:
                continue

            qty = int(m.group('qty'))
            groups = m.groupdict()
            unit = parse_amount(groups.get('unit'))
            total = parse_amount(groups.get('total'))
            if total is None:
                if unit is None:
                    continue
                total = unit * qty

            if groups.get('total') is None:
                confidence = self.bands.structured_inconsistent
            elif unit is None or self._consistent(qty, unit, total):
                confidence = self.bands.structured
            else:
                confidence = self.bands.structured_inconsistent

            candidate = self._build_candidate(
                name=name,
                quantity=qty,
                price=total,
                confidence=confidence,
                source=text,
                line_number=line_number,
                unit_price=unit,
                method=method,
            )
            if candidate is not None:
                return candidate
        return None
