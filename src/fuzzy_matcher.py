"""
Fuzzy Matcher
=============
Edit-distance matching of OCR lines against the product vocabulary.

  levenshtein(a, b)            two-row dynamic programming, O(min(len)) memory
  similarity(a, b)             (maxLen - distance) / maxLen over case-folded text
  is_fuzzy_match(line, phrase) phrase words covered by similar line words

Both fold case the same way, so for single-token strings
is_fuzzy_match(a, b, t) is exactly similarity(a, b) >= t.

FuzzyMatcher adds the vocabulary search, a permissive quantity / price scan
and the weighted confidence score used by the fuzzy fallback parser.
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import List, NamedTuple, Optional

from loguru import logger

from rule_set import RuleSet, VocabularyTerm
from utils import expand_amount, parse_amount


# ─── Permissive quantity / price scan ─────────────────────────────────────────

_QTY = r'(?P<qty>\d{1,3}|[TlI])'

# "1 x @ 6,364 6,364" / "T x 6,364 = 6,364" → quantity and total
_QTY_UNIT_TOTAL = re.compile(expand_amount(
    r'(?<![\w.,])' + _QTY + r'\s*[xX]\s*@?\s*(?P<unit>{num})(?:\s*=\s*|\s+)(?P<total>{num})(?![\w.,])'
))

# "2 x @ 4,546" → quantity and unit price
_QTY_UNIT = re.compile(expand_amount(
    r'(?<![\w.,])' + _QTY + r'\s*[xX]\s*@\s*(?P<unit>{num})(?![\w.,])'
))

# standalone amount with a thousands group ("9,092", "10.000"); the right-most one wins
_MONEY = re.compile(
    r'(?<![\w.,])(?P<amount>\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?)(?![\w.,%])'
)


class QuantityPrice(NamedTuple):
    quantity: int
    price: Decimal
    unit_price: Optional[Decimal] = None


@dataclass(frozen=True)
class FuzzyHit:
    term: VocabularyTerm
    spelling: str
    coverage: float
    similarity: float


# ─── Core string metrics ──────────────────────────────────────────────────────

def levenshtein(a: str, b: str) -> int:
    """Edit distance keeping only two rows of the DP table."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, 1):
            current[j] = min(
                previous[j] + 1,             # deletion
                current[j - 1] + 1,          # insertion
                previous[j - 1] + (ca != cb) # substitution
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalised edit-distance similarity in [0, 1]. Case-insensitive."""
    a, b = a.casefold(), b.casefold()
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    return (longest - levenshtein(a, b)) / longest


def _covered_words(line_words: List[str], phrase_words: List[str], threshold: float) -> int:
    return sum(
        1 for pw in phrase_words
        if any(similarity(lw, pw) >= threshold for lw in line_words)
    )


def is_fuzzy_match(line: str, phrase: str, threshold: float = 0.6) -> bool:
    """
    True when at least half of the phrase words (rounded up) have a
    line word with similarity >= threshold. Case-insensitive.
    """
    line_words = line.casefold().split()
    phrase_words = phrase.casefold().split()
    if not line_words or not phrase_words:
        return False
    covered = _covered_words(line_words, phrase_words, threshold)
    return covered >= math.ceil(0.5 * len(phrase_words))


def coverage(line: str, phrase: str, threshold: float = 0.6) -> float:
    """Fraction of phrase words covered by the line."""
    phrase_words = phrase.casefold().split()
    if not phrase_words:
        return 0.0
    return _covered_words(line.casefold().split(), phrase_words, threshold) / len(phrase_words)


# ─── Vocabulary matcher ───────────────────────────────────────────────────────

class FuzzyMatcher:
    """Vocabulary lookup and confidence scoring over one RuleSet."""

    def __init__(self, rule_set: RuleSet):
        self.rules = rule_set
        self.weights = rule_set.scoring.fuzzy
        self.threshold = rule_set.thresholds.match_threshold

    def best_match(self, line: str) -> Optional[FuzzyHit]:
        """
        Best vocabulary term for a line.

        Every term and each of its spellings is tested; hits rank by
        covered-word fraction, then by whole-line similarity to the term.
        Ties keep the earlier vocabulary entry.
        """
        if not line or not line.strip():
            return None

        lowered = line.lower()
        best: Optional[FuzzyHit] = None
        for term in self.rules.vocabulary:
            for spelling in term.spellings:
                if not is_fuzzy_match(line, spelling, self.threshold):
                    continue
                hit = FuzzyHit(
                    term=term,
                    spelling=spelling,
                    coverage=coverage(line, spelling, self.threshold),
                    similarity=similarity(lowered, term.term.lower()),
                )
                if best is None or (hit.coverage, hit.similarity) > (best.coverage, best.similarity):
                    best = hit

        if best is not None:
            logger.debug(
                f"[FuzzyMatcher] {line!r} ~ {best.term.term!r} "
                f"(coverage={best.coverage:.2f}, similarity={best.similarity:.2f})"
            )
        return best

    def scan_quantity_price(self, line: str) -> Optional[QuantityPrice]:
        """
        Pull a quantity and a price out of a damaged line.

        Order: quantity + unit + total, then quantity + unit, then the
        right-most thousands-grouped amount with quantity 1.
        A bare number ("MIE GACOAN 2") is never taken as a price.
        """
        m = _QTY_UNIT_TOTAL.search(line)
        if m:
            qty = self._quantity(m.group('qty'))
            total = parse_amount(m.group('total'))
            if qty and total is not None:
                return QuantityPrice(qty, total, parse_amount(m.group('unit')))

        m = _QTY_UNIT.search(line)
        if m:
            qty = self._quantity(m.group('qty'))
            unit = parse_amount(m.group('unit'))
            if qty and unit is not None:
                return QuantityPrice(qty, unit * qty, unit)

        amounts = [parse_amount(a.group('amount')) for a in _MONEY.finditer(line)]
        amounts = [a for a in amounts if a is not None and a > 0]
        if amounts:
            return QuantityPrice(1, amounts[-1])
        return None

    def score(self, line: str, term: str, quantity: int, price: Decimal) -> float:
        """
        0.4·similarity + 0.2·quantity plausible + 0.2·price plausible
        + 0.1·context keyword + 0.1·expected shape, clamped to [0, 1].
        Weights and limits come from scoring.fuzzy.
        """
        w = self.weights
        total = w.similarity * similarity(line.lower(), term.lower())
        if 1 <= quantity <= w.max_quantity:
            total += w.quantity
        if 0 < price <= w.max_price:
            total += w.price
        lowered = line.lower()
        if any(keyword in lowered for keyword in w.context_keywords):
            total += w.context_keyword
        if self.rules.fuzzy_expected_shape.search(line):
            total += w.expected_shape
        return round(max(0.0, min(1.0, total)), 4)

    @staticmethod
    def _quantity(token: str) -> Optional[int]:
        if token in ('T', 'l', 'I'):
            return 1
        qty = int(token)
        return qty if qty >= 1 else None
