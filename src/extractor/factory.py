"""
Parser Factory
==============
Builds the layout strategies for one RuleSet and hands them out in
their fixed priority order.

Usage
-----
    factory = ParserFactory(rule_set)
    for parser in factory.chain():
        outcome = parser.parse(context, index)
        if outcome:
            break
"""

from typing import Dict, List

from loguru import logger

from extractor.base_parser import BaseParser
from extractor.fuzzy_parser import FuzzyFallbackParser
from extractor.merged_line_parser import MergedLineParser
from extractor.structured_parser import StructuredLineParser
from extractor.two_line_parser import TwoLineParser
from extractor.vendor_parser import VendorLayoutParser
from rule_set import RuleSet


class ParserFactory:
    """
    Returns layout strategies bound to a RuleSet.

    Priority: merged_line → structured → two_line → vendor → fuzzy.
    The first strategy that yields candidates for a line wins.
    """

    # ── Mapping: strategy name → parser class ─────────────────────────────────
    _CLASSES = {
        "merged_line": MergedLineParser,
        "structured":  StructuredLineParser,
        "two_line":    TwoLineParser,
        "vendor":      VendorLayoutParser,
        "fuzzy":       FuzzyFallbackParser,
    }

    PRIORITY = ("merged_line", "structured", "two_line", "vendor", "fuzzy")

    def __init__(self, rule_set: RuleSet):
        self.rules = rule_set
        self._parsers: Dict[str, BaseParser] = {}   # lazy-initialised per strategy

    def get_parser(self, strategy: str) -> BaseParser:
        """
        Return the (cached) parser for a strategy name.

        Raises
        ------
        KeyError
            Unknown strategy name.
        """
        if strategy not in self._CLASSES:
            raise KeyError(
                f"Unknown parsing strategy '{strategy}'. Supported: {self.supported_strategies}"
            )

        if strategy not in self._parsers:
            if strategy == "merged_line":
                parser = MergedLineParser(
                    self.rules,
                    structured=self.get_parser("structured"),
                    fuzzy=self.get_parser("fuzzy"),
                )
            else:
                parser = self._CLASSES[strategy](self.rules)
            self._parsers[strategy] = parser
            logger.debug(f"[ParserFactory] Initialised {parser.__class__.__name__}")

        return self._parsers[strategy]

    def chain(self) -> List[BaseParser]:
        """All strategies in priority order."""
        return [self.get_parser(name) for name in self.PRIORITY]

    @property
    def supported_strategies(self) -> list:
        """List of all strategy names."""
        return list(self._CLASSES.keys())
