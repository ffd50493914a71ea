"""
Merged-Line Parser
==================
OCR sometimes concatenates several item rows onto one physical line:

    ES TEKLEK 1 x46,364 6,364 MIE GACOAN 1 x @ 10,000 10,000

A new segment starts where an uppercase word run follows a numeric
token. Segments without a product indicator token are dropped, at least
two must survive, and each survivor is parsed by the structured parser
(falling back to fuzzy matching for that segment alone).
"""

import re
from typing import List, Optional

from loguru import logger

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome
from extractor.fuzzy_parser import FuzzyFallbackParser
from extractor.structured_parser import StructuredLineParser
from line_items import ExtractionMethod
from rule_set import RuleSet


_UPPER_WORD = re.compile(r'^[A-Z]{2,}$')
_NUMERIC_TOKEN = re.compile(r'^[\d.,=]*\d[\d.,=]*$')
_HAS_DIGIT = re.compile(r'\d')


class MergedLineParser(BaseParser):
    """Splits one physical line into several item segments."""

    name = "merged_line"
    method = ExtractionMethod.MERGED_LINE_SPLIT

    def __init__(
        self,
        rule_set: RuleSet,
        structured: Optional[StructuredLineParser] = None,
        fuzzy: Optional[FuzzyFallbackParser] = None,
    ):
        super().__init__(rule_set)
        self.structured = structured or StructuredLineParser(rule_set)
        self.fuzzy = fuzzy or FuzzyFallbackParser(rule_set)

    def split_segments(self, line: str) -> List[str]:
        """Cut the line before every uppercase word that follows a number."""
        tokens = line.split()
        segments: List[List[str]] = []
        current: List[str] = []

        for i, token in enumerate(tokens):
            boundary = (
                i > 0
                and current
                and _UPPER_WORD.match(token)
                and _NUMERIC_TOKEN.match(tokens[i - 1])
                and any(_HAS_DIGIT.search(t) for t in current)
            )
            if boundary:
                segments.append(current)
                current = []
            current.append(token)

        if current:
            segments.append(current)
        return [' '.join(s) for s in segments]

    def has_product_indicator(self, segment: str) -> bool:
        return any(token.upper() in self.rules.product_indicators for token in segment.split())

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        line = context.lines[index]
        segments = [s for s in self.split_segments(line) if self.has_product_indicator(s)]
        if len(segments) < 2:
            return None

        factor = self.bands.merged_line_factor
        candidates = []
        for segment in segments:
            candidate = self.structured.parse_text(
                segment, line_number=index, method=self.method
            )
            if candidate is not None:
                candidate.confidence = round(candidate.confidence * factor, 4)
            else:
                candidate = self.fuzzy.parse_text(segment, line_number=index)
            if candidate is not None:
                candidates.append(candidate)

        if not candidates:
            return None

        logger.debug(
            f"[MergedLineParser] line {index}: {len(segments)} segments → "
            f"{len(candidates)} candidates"
        )
        return ParseOutcome(candidates=candidates, consumed=(index,))
