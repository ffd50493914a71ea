"""
Fuzzy Fallback Parser
=====================
Last resort for a line every other strategy rejected: find the closest
vocabulary term, then scan the line for a quantity and a price.

    R ES TEKLEK 1 x @ 6,364 6,364   →  ES TEKLEK, 1, 6364

The candidate is named after the canonical vocabulary term. No price
found means no candidate. Confidence is the weighted fuzzy score,
never below the fuzzy band floor (0.5).
"""

from typing import Optional

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome
from fuzzy_matcher import FuzzyMatcher
from line_items import ExtractionMethod, LineItemCandidate
from rule_set import RuleSet


class FuzzyFallbackParser(BaseParser):

    name = "fuzzy"
    method = ExtractionMethod.FUZZY_FALLBACK

    def __init__(self, rule_set: RuleSet):
        super().__init__(rule_set)
        self.matcher = FuzzyMatcher(rule_set)

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        candidate = self.parse_text(context.lines[index], line_number=index)
        if candidate is None:
            return None
        return ParseOutcome(candidates=[candidate], consumed=(index,))

    def parse_text(self, text: str, line_number: Optional[int] = None) -> Optional[LineItemCandidate]:
        hit = self.matcher.best_match(text)
        if hit is None:
            return None

        scanned = self.matcher.scan_quantity_price(text)
        if scanned is None:
            return None

        score = self.matcher.score(text, hit.term.term, scanned.quantity, scanned.price)
        return self._build_candidate(
            name=hit.term.term,
            quantity=scanned.quantity,
            price=scanned.price,
            confidence=max(self.rules.scoring.fuzzy.floor, score),
            source=text,
            line_number=line_number,
            unit_price=scanned.unit_price,
        )
