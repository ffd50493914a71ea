"""
Tests for the layout strategies, the line classifier and the parser factory
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from extractor import DocumentContext, LineClassifier, LineKind, ParserFactory
from extractor.base_parser import BaseParser, clean_name
from extractor.fuzzy_parser import FuzzyFallbackParser
from extractor.merged_line_parser import MergedLineParser
from extractor.structured_parser import StructuredLineParser
from extractor.two_line_parser import TwoLineParser
from extractor.vendor_parser import VendorLayoutParser
from line_items import ExtractionMethod
from rule_set import RuleSet


@pytest.fixture(scope="module")
def rules():
    return RuleSet.from_yaml()


@pytest.fixture(scope="module")
def factory(rules):
    return ParserFactory(rules)


def make_context(rules, *lines):
    return DocumentContext(lines=tuple(lines), vendors=rules.detect_vendors("\n".join(lines)))


# ─── Names ────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("ES TEKLEK", "ES TEKLEK"),
    ("  SIOMAY   AYAM : ", "SIOMAY AYAM"),
    ("R ES TEKLEK", None),
    ("Sub Total", None),
    ("12,000", None),
    ("ES TEH 1 x", None),
    ("", None),
])
def test_clean_name(raw, expected):
    assert clean_name(raw) == expected


def test_base_parser_is_abstract(rules):
    with pytest.raises(NotImplementedError):
        BaseParser(rules).parse(make_context(rules, "ES TEH"), 0)


# ─── Structured single line ───────────────────────────────────────────────────

@pytest.mark.parametrize("line, name, qty, price, confidence", [
    ("ES TEKLEK: 1 x @ 6,364 = 6,364", "ES TEKLEK", 1, "6364", 0.95),
    ("ES TEKLEK 1 x @ 6,364 6,364", "ES TEKLEK", 1, "6364", 0.95),
    ("SIOMAY AYAM : 1 9,091 9,091", "SIOMAY AYAM", 1, "9091", 0.95),
    ("TEA 2 x @ 4,546", "TEA", 2, "9092", 0.9),
    ("2 x TEA 9,092", "TEA", 2, "9092", 0.95),
    ("ES TEH 2 x @ 5,000 9,000", "ES TEH", 2, "9000", 0.9),
])
def test_structured_variants(rules, line, name, qty, price, confidence):
    outcome = StructuredLineParser(rules).parse(make_context(rules, line), 0)

    assert outcome is not None
    assert outcome.consumed == (0,)
    candidate = outcome.candidates[0]
    assert candidate.name == name
    assert candidate.quantity == qty
    assert candidate.price == Decimal(price)
    assert candidate.confidence == pytest.approx(confidence)
    assert candidate.extraction_method is ExtractionMethod.STRUCTURED_SINGLE_LINE


@pytest.mark.parametrize("line", [
    "R ES TEKLEK 1 x @ 6,364 6,364",
    "Sub Total : 1 5,000 5,000",
    "ES TEKLEK",
    "6,364",
])
def test_structured_rejects(rules, line):
    assert StructuredLineParser(rules).parse(make_context(rules, line), 0) is None


def test_structured_price_is_line_total(rules):
    candidate = StructuredLineParser(rules).parse_text("MIE AYAM 2 x @ 15,000 30,000")
    assert candidate.price == Decimal("30000")
    assert candidate.unit_price == Decimal("15000")


# ─── Two-line ─────────────────────────────────────────────────────────────────

def test_two_line_pair(rules):
    context = make_context(rules, "ES TEKLEK", "1 x @ 6,364 6,364")
    outcome = TwoLineParser(rules).parse(context, 0)

    assert outcome.consumed == (0, 1)
    candidate = outcome.candidates[0]
    assert candidate.name == "ES TEKLEK"
    assert candidate.quantity == 1
    assert candidate.price == Decimal("6364")
    assert candidate.confidence == pytest.approx(0.95)
    assert candidate.extraction_method is ExtractionMethod.TWO_LINE


def test_two_line_needs_following_quantity_row(rules):
    parser = TwoLineParser(rules)
    assert parser.parse(make_context(rules, "ES TEKLEK"), 0) is None
    assert parser.parse(make_context(rules, "ES TEKLEK", "MIE AYAM"), 0) is None


def test_two_line_label_is_not_a_name(rules):
    parser = TwoLineParser(rules)
    assert not parser.looks_like_name("Kasir")
    assert parser.parse(make_context(rules, "Kasir", "1 x @ 6,364 6,364"), 0) is None


# ─── Vendor layout ────────────────────────────────────────────────────────────

def test_vendor_layout_with_micro_correction(rules):
    context = make_context(rules, "ALFAMART CILANDAK", "SUNLG 755 T 25,200 25,200")
    outcome = VendorLayoutParser(rules).parse(context, 1)

    candidate = outcome.candidates[0]
    assert candidate.name == "SUNLG 755"
    assert candidate.quantity == 1
    assert candidate.price == Decimal("25200")
    assert candidate.confidence == pytest.approx(0.9)
    assert candidate.extraction_method is ExtractionMethod.VENDOR_SPECIFIC


def test_vendor_layout_without_unit_price(rules):
    context = make_context(rules, "ALFAMART", "AQUA 600ML 2 7,000")
    candidate = VendorLayoutParser(rules).parse(context, 1).candidates[0]

    assert candidate.name == "AQUA 600ML"
    assert candidate.quantity == 2
    assert candidate.price == Decimal("7000")
    assert candidate.confidence == pytest.approx(0.8)


def test_vendor_layout_needs_vendor_evidence(rules):
    context = make_context(rules, "SUNLG 755 T 25,200 25,200")
    assert VendorLayoutParser(rules).parse(context, 0) is None


# ─── Fuzzy fallback ───────────────────────────────────────────────────────────

def test_fuzzy_fallback(rules):
    candidate = FuzzyFallbackParser(rules).parse_text("R ES TEKLEK 1 x @ 6,364 6,364", line_number=3)

    assert candidate.name == "ES TEKLEK"
    assert candidate.quantity == 1
    assert candidate.price == Decimal("6364")
    assert candidate.line_number == 3
    assert 0.5 <= candidate.confidence < 0.95
    assert candidate.extraction_method is ExtractionMethod.FUZZY_FALLBACK


def test_fuzzy_fallback_needs_a_price(rules):
    assert FuzzyFallbackParser(rules).parse_text("ES TEKLEK") is None
    assert FuzzyFallbackParser(rules).parse_text("MIE GACOAN 2") is None


def test_fuzzy_fallback_needs_a_vocabulary_hit(rules):
    assert FuzzyFallbackParser(rules).parse_text("XYZ 1 x @ 6,364 6,364") is None


# ─── Merged line ──────────────────────────────────────────────────────────────

MERGED = "ES TEKLEK 1 x46,364 6,364 MIE GACOAN 1 x @ 10,000 10,000"


def test_split_segments(factory):
    parser = factory.get_parser("merged_line")
    assert parser.split_segments(MERGED) == [
        "ES TEKLEK 1 x46,364 6,364",
        "MIE GACOAN 1 x @ 10,000 10,000",
    ]


def test_merged_line_split(rules, factory):
    outcome = factory.get_parser("merged_line").parse(make_context(rules, MERGED), 0)

    assert [c.name for c in outcome.candidates] == ["ES TEKLEK", "MIE GACOAN"]
    assert [c.price for c in outcome.candidates] == [Decimal("6364"), Decimal("10000")]
    assert all(c.extraction_method is ExtractionMethod.MERGED_LINE_SPLIT for c in outcome.candidates)
    # merged segments score below the same row printed on its own line
    assert outcome.candidates[0].confidence == pytest.approx(0.81)
    assert outcome.candidates[1].confidence == pytest.approx(0.855)


def test_merged_line_needs_two_item_segments(rules):
    parser = MergedLineParser(rules)
    assert parser.parse(make_context(rules, "ES TEH 1 x @ 5,000 5,000"), 0) is None
    assert parser.parse(
        make_context(rules, "ES TEH 1 x @ 5,000 5,000 KERUPUK 1 x @ 2,000 2,000"), 0
    ) is None


# ─── Line classifier ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("line, kind", [
    ("ES TEH 1 x @ 5,000 5,000", LineKind.ITEM),
    ("ES TEKLEK", LineKind.KEEP),
    ("R ES TEKLEK 1 x @ 6,364 6,364", LineKind.ITEM),
    ("Tanggal: 09-09-24", LineKind.SKIP),
    ("Kasir : Rina", LineKind.SKIP),
    ("Terima Kasih", LineKind.SKIP),
    ("Grand Total : 58,000", LineKind.SKIP),
    ("Pajak 10% : 5,273", LineKind.SKIP),
    ("58,000", LineKind.SKIP),
])
def test_classifier(rules, line, kind):
    assert LineClassifier(rules).classify(line) is kind


def test_skip_reason(rules):
    classifier = LineClassifier(rules)
    assert classifier.skip_reason("Tanggal: 09-09-24") == "header"
    assert classifier.skip_reason("Terima Kasih") == "footer"
    assert classifier.skip_reason("Sub Total : 52,729") == "summary"
    assert classifier.skip_reason("58,000") == "numeric"
    assert classifier.skip_reason("   ") == "empty"
    assert classifier.skip_reason("ES TEKLEK") is None


# ─── Factory ──────────────────────────────────────────────────────────────────

def test_factory_priority(factory):
    assert [p.name for p in factory.chain()] == [
        "merged_line", "structured", "two_line", "vendor", "fuzzy",
    ]


def test_factory_caches_parsers(factory):
    assert factory.get_parser("structured") is factory.get_parser("structured")
    merged = factory.get_parser("merged_line")
    assert merged.structured is factory.get_parser("structured")
    assert merged.fuzzy is factory.get_parser("fuzzy")


def test_factory_unknown_strategy(factory):
    with pytest.raises(KeyError):
        factory.get_parser("ocr_magic")
    assert "vendor" in factory.supported_strategies
