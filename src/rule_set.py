"""
Receipt Rule Set
================
Immutable, versioned correction and layout data loaded from YAML.

Sections
--------
  character_maps   corrupted glyph/token → canonical token, gated by context
                   (quantity, price, product, letters, total, tax)
  word_maps        corrupted phrase → canonical phrase
  context_rules    label + separator + expected value shape → correction
  vendors          keyword evidence, vendor micro corrections, columnar layouts
  vocabulary       known product names with accepted spellings
  noise_tokens     short OCR fragments removed during cleanup
  line_classes     header / footer / summary / numeric skip patterns
  totals           grand total, subtotal and tax label patterns
  scoring          confidence bands, fuzzy weights, overall blend
  thresholds       minimum rule confidences and the fuzzy match threshold

Raw records are validated with pydantic, then compiled once into frozen
dataclasses holding precompiled regexes. Any malformed record raises
ConfigurationError at construction; there is no partially built RuleSet.

Usage
-----
    rules = RuleSet.from_yaml()                       # config/receipt_rules.yaml
    rules = RuleSet.from_yaml("my_rules.yaml")
    rules = RuleSet.from_dict(yaml.safe_load(text))
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Pattern, Tuple, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils import expand_amount


DEFAULT_RULES_PATH = Path(__file__).parent.parent / "config" / "receipt_rules.yaml"

CONTEXT_TAGS = ("quantity", "price", "product", "letters", "total", "tax")

DEFAULT_VALUE_SHAPE = r"(?:Rp\.?\s*)?-?{num}"

_TOTAL_LINE = re.compile(r'\btotal\b', re.IGNORECASE)
_TAX_LINE   = re.compile(r'\b(?:pajak|tax|ppn)\b', re.IGNORECASE)


class ConfigurationError(Exception):
    """Rule data is malformed; raised before any document is processed."""


# ─── Raw records (pydantic) ───────────────────────────────────────────────────

class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class CharacterMapRecord(_Record):
    pattern: str = Field(..., min_length=1)
    correction: str
    context: Literal["quantity", "price", "product", "letters", "total", "tax"]
    confidence: float = Field(..., ge=0, le=1)


class WordMapRecord(_Record):
    pattern: str = Field(..., min_length=1)
    correction: str
    confidence: float = Field(..., ge=0, le=1)
    vendor: Optional[str] = None


class ContextRuleRecord(_Record):
    label: str = Field(..., min_length=1)
    separator: str = Field(":", min_length=1)
    expected_shape: str = DEFAULT_VALUE_SHAPE
    correction: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0, le=1)
    vendor: Optional[str] = None


class MicroCorrectionRecord(_Record):
    pattern: str = Field(..., min_length=1)
    replacement: str


class VendorRecord(_Record):
    name: str = Field(..., min_length=1)
    keywords: List[str] = Field(..., min_length=1)
    min_keyword_hits: int = Field(1, ge=1)
    character_map: List[MicroCorrectionRecord] = Field(default_factory=list)
    layouts: List[str] = Field(default_factory=list)


class VocabularyRecord(_Record):
    term: str = Field(..., min_length=1)
    variations: List[str] = Field(default_factory=list)


class LineClassesRecord(_Record):
    header: List[str] = Field(default_factory=list)
    footer: List[str] = Field(default_factory=list)
    summary: List[str] = Field(default_factory=list)
    numeric: str = r"^[\d\s.,:;=\-+%/]+$"


class TotalsRecord(_Record):
    grand_total: List[str] = Field(..., min_length=1)
    subtotal: List[str] = Field(default_factory=list)
    tax: List[str] = Field(default_factory=list)


class ConfidenceBands(_Record):
    structured: float = Field(0.95, ge=0, le=1)
    structured_inconsistent: float = Field(0.9, ge=0, le=1)
    two_line: float = Field(0.95, ge=0, le=1)
    vendor: float = Field(0.8, ge=0, le=1)
    vendor_consistent: float = Field(0.9, ge=0, le=1)
    merged_line_factor: float = Field(0.9, ge=0, le=1)


class FuzzyScoring(_Record):
    similarity: float = Field(0.4, ge=0, le=1)
    quantity: float = Field(0.2, ge=0, le=1)
    price: float = Field(0.2, ge=0, le=1)
    context_keyword: float = Field(0.1, ge=0, le=1)
    expected_shape: float = Field(0.1, ge=0, le=1)
    floor: float = Field(0.5, ge=0, le=1)
    max_quantity: int = Field(10, ge=1)
    max_price: int = Field(1_000_000, gt=0)
    context_keywords: List[str] = Field(
        default_factory=lambda: ["x @", "quantity", "price", "total", "item", "product"]
    )
    expected_shape_pattern: str = r"\d+\s*[xX]\s*@?\s*{num}"


class OverallScoring(_Record):
    engine: float = Field(0.4, ge=0, le=1)
    items: float = Field(0.6, ge=0, le=1)


class ScoringRecord(_Record):
    bands: ConfidenceBands = Field(default_factory=ConfidenceBands)
    fuzzy: FuzzyScoring = Field(default_factory=FuzzyScoring)
    overall: OverallScoring = Field(default_factory=OverallScoring)


class Thresholds(_Record):
    word_min_confidence: float = Field(0.9, ge=0, le=1)
    context_min_confidence: float = Field(0.9, ge=0, le=1)
    match_threshold: float = Field(0.6, ge=0, le=1)
    low_confidence_word: float = Field(0.5, ge=0, le=1)


class RuleSetRecord(_Record):
    version: str
    character_maps: List[CharacterMapRecord] = Field(default_factory=list)
    word_maps: List[WordMapRecord] = Field(default_factory=list)
    context_rules: List[ContextRuleRecord] = Field(default_factory=list)
    vendors: List[VendorRecord] = Field(default_factory=list)
    vocabulary: List[VocabularyRecord] = Field(default_factory=list)
    noise_tokens: List[str] = Field(default_factory=list)
    product_indicators: List[str] = Field(default_factory=list)
    line_classes: LineClassesRecord = Field(default_factory=LineClassesRecord)
    totals: TotalsRecord
    scoring: ScoringRecord = Field(default_factory=ScoringRecord)
    thresholds: Thresholds = Field(default_factory=Thresholds)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value


# ─── Compiled rules ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CharacterMap:
    pattern: str
    correction: str
    context: str
    confidence: float
    matcher: Pattern = field(repr=False, compare=False)
    line_gate: Optional[Pattern] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class WordMap:
    pattern: str
    correction: str
    confidence: float
    vendor: Optional[str]
    matcher: Pattern = field(repr=False, compare=False)


@dataclass(frozen=True)
class ContextRule:
    label: str
    separator: str
    expected_shape: str
    correction: str
    confidence: float
    vendor: Optional[str]
    matcher: Pattern = field(repr=False, compare=False)
    shape: Pattern = field(repr=False, compare=False)


@dataclass(frozen=True)
class VendorProfile:
    name: str
    keywords: Tuple[str, ...]
    min_keyword_hits: int
    keyword_matchers: Tuple[Pattern, ...] = field(repr=False, compare=False)
    micro_corrections: Tuple[Tuple[Pattern, str], ...] = field(repr=False, compare=False)
    layouts: Tuple[Pattern, ...] = field(repr=False, compare=False)

    def keyword_hits(self, text: str) -> int:
        return sum(1 for m in self.keyword_matchers if m.search(text))

    def is_present(self, text: str) -> bool:
        return self.keyword_hits(text) >= self.min_keyword_hits

    def apply_micro_corrections(self, line: str) -> str:
        for pattern, replacement in self.micro_corrections:
            line = pattern.sub(lambda _m: replacement, line)
        return line


@dataclass(frozen=True)
class VocabularyTerm:
    term: str
    variations: Tuple[str, ...] = ()

    @property
    def spellings(self) -> Tuple[str, ...]:
        return (self.term,) + self.variations


@dataclass(frozen=True)
class LineClassPatterns:
    header: Tuple[Pattern, ...]
    footer: Tuple[Pattern, ...]
    summary: Tuple[Pattern, ...]
    numeric: Pattern


@dataclass(frozen=True)
class TotalPatterns:
    grand_total: Tuple[Pattern, ...]
    subtotal: Tuple[Pattern, ...]
    tax: Tuple[Pattern, ...]


# ─── Compilation helpers ──────────────────────────────────────────────────────

def _compile(pattern: str, what: str, flags: int = 0) -> Pattern:
    try:
        return re.compile(expand_amount(pattern), flags)
    except re.error as e:
        raise ConfigurationError(f"Invalid regex in {what}: {pattern!r} ({e})") from e


def _token_pattern(token: str) -> str:
    """Escaped phrase whose internal spaces match any run of whitespace."""
    return r'\s+'.join(re.escape(part) for part in token.split())


def character_matcher(token: str, context: str) -> str:
    """
    Regex for one corrupted token inside its context.

      quantity  token directly before a quantity marker   "T x @"  "Tx"
      price     token directly before a thousands group   "R,364"  "1O,500"
      product   whole token                               "TENLEK"
      letters   glyph between two letters, not before a   "T0TAL"  "M1E"
                standalone quantity marker
      total     whole whitespace-delimited token (line gate applied separately)
      tax       same as total
    """
    tok = re.escape(token)
    if context == "quantity":
        return rf'(?<![\w@]){tok}(?=\s*[xX](?![A-Za-z]))'
    if context == "price":
        return rf'(?<![\w@]){tok}(?=[.,]\d{{3}}(?!\d))|(?<=\d){tok}(?=\d{{0,2}}[.,]\d{{3}}(?!\d))'
    if context == "product":
        return rf'(?<![\w@]){tok}(?![\w@])'
    if context == "letters":
        return rf'(?<=[A-Za-z]){tok}(?=[A-Za-z])(?![xX](?![A-Za-z]))'
    if context in ("total", "tax"):
        return rf'(?<!\S){tok}(?!\S)'
    raise ConfigurationError(f"Unknown character map context {context!r}")


def _context_matcher(label: str, separator: str) -> str:
    boundary = r'\b' if re.match(r'\w', label[-1]) else ''
    return (
        rf'^(?P<head>\s*{_token_pattern(label)}{boundary}[^\n]*?{re.escape(separator)}\s*)'
        rf'(?P<value>\S.*?)\s*$'
    )


# ─── Rule set ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RuleSet:
    """Read-only rule data shared by every extraction call."""
    version: str
    character_maps: Tuple[CharacterMap, ...]
    word_maps: Tuple[WordMap, ...]
    context_rules: Tuple[ContextRule, ...]
    vendors: Tuple[VendorProfile, ...]
    vocabulary: Tuple[VocabularyTerm, ...]
    noise_tokens: FrozenSet[str]
    product_indicators: FrozenSet[str]
    line_classes: LineClassPatterns
    totals: TotalPatterns
    scoring: ScoringRecord
    thresholds: Thresholds
    noise_matcher: Optional[Pattern] = field(default=None, repr=False, compare=False)
    fuzzy_expected_shape: Optional[Pattern] = field(default=None, repr=False, compare=False)
    source: Optional[str] = None

    # ── Construction ──────────────────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "RuleSet":
        """Load and compile a rule file (default: config/receipt_rules.yaml)."""
        path = Path(path) if path is not None else DEFAULT_RULES_PATH
        if not path.exists():
            raise ConfigurationError(f"Rule file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Rule file {path} is not valid YAML: {e}") from e

        return cls.from_dict(data, source=str(path))

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> "RuleSet":
        """Validate raw rule data and compile it."""
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Rule data must be a mapping, got {type(data).__name__}"
            )
        try:
            record = RuleSetRecord.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid rule data: {e}") from e

        rule_set = cls._compile_record(record, source)
        rule_set._check_fixpoint()

        logger.info(
            f"[RuleSet] version={rule_set.version} "
            f"characters={len(rule_set.character_maps)} words={len(rule_set.word_maps)} "
            f"context={len(rule_set.context_rules)} vendors={len(rule_set.vendors)} "
            f"vocabulary={len(rule_set.vocabulary)}"
        )
        return rule_set

    @classmethod
    def _compile_record(cls, record: RuleSetRecord, source: Optional[str]) -> "RuleSet":
        vendor_names = {v.name for v in record.vendors}
        if len(vendor_names) != len(record.vendors):
            raise ConfigurationError("Vendor names must be unique")

        def _check_vendor(name: Optional[str], what: str):
            if name is not None and name not in vendor_names:
                raise ConfigurationError(f"{what} refers to unknown vendor {name!r}")

        character_maps = []
        for r in record.character_maps:
            gate = {"total": _TOTAL_LINE, "tax": _TAX_LINE}.get(r.context)
            character_maps.append(CharacterMap(
                pattern=r.pattern,
                correction=r.correction,
                context=r.context,
                confidence=r.confidence,
                matcher=_compile(character_matcher(r.pattern, r.context),
                                 f"character map {r.pattern!r}"),
                line_gate=gate,
            ))

        word_maps = []
        for r in record.word_maps:
            _check_vendor(r.vendor, f"word map {r.pattern!r}")
            if not r.pattern.split():
                raise ConfigurationError(f"Word map pattern {r.pattern!r} is blank")
            word_maps.append(WordMap(
                pattern=r.pattern,
                correction=r.correction,
                confidence=r.confidence,
                vendor=r.vendor,
                matcher=_compile(rf'(?<!\S){_token_pattern(r.pattern)}(?!\S)',
                                 f"word map {r.pattern!r}"),
            ))

        context_rules = []
        for r in record.context_rules:
            _check_vendor(r.vendor, f"context rule {r.label!r}")
            context_rules.append(ContextRule(
                label=r.label,
                separator=r.separator,
                expected_shape=r.expected_shape,
                correction=r.correction,
                confidence=r.confidence,
                vendor=r.vendor,
                matcher=_compile(_context_matcher(r.label, r.separator),
                                 f"context rule {r.label!r}", re.IGNORECASE),
                shape=_compile(r.expected_shape, f"context rule {r.label!r} shape",
                               re.IGNORECASE),
            ))

        vendors = []
        for v in record.vendors:
            layouts = tuple(_compile(p, f"vendor {v.name!r} layout") for p in v.layouts)
            for layout in layouts:
                missing = {"name", "total"} - set(layout.groupindex)
                if missing:
                    raise ConfigurationError(
                        f"Vendor {v.name!r} layout {layout.pattern!r} lacks groups {sorted(missing)}"
                    )
            vendors.append(VendorProfile(
                name=v.name,
                keywords=tuple(v.keywords),
                min_keyword_hits=v.min_keyword_hits,
                keyword_matchers=tuple(
                    _compile(rf'\b{_token_pattern(k)}\b', f"vendor {v.name!r} keyword",
                             re.IGNORECASE)
                    for k in v.keywords
                ),
                micro_corrections=tuple(
                    (_compile(m.pattern, f"vendor {v.name!r} micro correction"), m.replacement)
                    for m in v.character_map
                ),
                layouts=layouts,
            ))

        vocabulary = tuple(
            VocabularyTerm(term=r.term.strip(), variations=tuple(r.variations))
            for r in record.vocabulary
        )

        indicators = {t.upper() for t in record.product_indicators}
        for term in vocabulary:
            for spelling in term.spellings:
                indicators.update(w.upper() for w in spelling.split() if len(w) > 1)

        classes = record.line_classes
        line_classes = LineClassPatterns(
            header=tuple(_compile(p, "header pattern", re.IGNORECASE) for p in classes.header),
            footer=tuple(_compile(p, "footer pattern", re.IGNORECASE) for p in classes.footer),
            summary=tuple(_compile(p, "summary pattern", re.IGNORECASE) for p in classes.summary),
            numeric=_compile(classes.numeric, "numeric pattern"),
        )

        totals = TotalPatterns(
            grand_total=tuple(_compile(p, "grand total pattern", re.IGNORECASE)
                              for p in record.totals.grand_total),
            subtotal=tuple(_compile(p, "subtotal pattern", re.IGNORECASE)
                           for p in record.totals.subtotal),
            tax=tuple(_compile(p, "tax pattern", re.IGNORECASE) for p in record.totals.tax),
        )

        noise = frozenset(t for t in record.noise_tokens if t.strip())
        noise_matcher = None
        if noise:
            alternatives = '|'.join(re.escape(t) for t in sorted(noise, key=len, reverse=True))
            noise_matcher = _compile(rf'(?<!\S)(?:{alternatives})(?!\S)', "noise tokens")

        return cls(
            version=record.version,
            character_maps=tuple(character_maps),
            word_maps=tuple(word_maps),
            context_rules=tuple(context_rules),
            vendors=tuple(vendors),
            vocabulary=vocabulary,
            noise_tokens=noise,
            product_indicators=frozenset(indicators),
            line_classes=line_classes,
            totals=totals,
            scoring=record.scoring,
            thresholds=record.thresholds,
            noise_matcher=noise_matcher,
            fuzzy_expected_shape=_compile(record.scoring.fuzzy.expected_shape_pattern,
                                          "fuzzy expected shape"),
            source=source,
        )

    def _check_fixpoint(self):
        """
        Reject rules whose output would be rewritten again by another rule.

        Every correction is scanned with every character and word matcher
        (line gates ignored), and each context correction must satisfy its
        own expected shape. A `letters` correction is scanned where it
        lands, between two letters.
        """
        matchers = [(f"character map {c.pattern!r} ({c.context})", c.matcher)
                    for c in self.character_maps]
        matchers += [(f"word map {w.pattern!r}", w.matcher) for w in self.word_maps]

        corrections = [f"A{c.correction}A" if c.context == "letters" else c.correction
                       for c in self.character_maps]
        corrections += [w.correction for w in self.word_maps]
        corrections += [r.correction for r in self.context_rules]

        for text in corrections:
            for what, matcher in matchers:
                if matcher.search(text):
                    raise ConfigurationError(
                        f"{what} would rewrite the correction {text!r} again"
                    )

        for rule in self.context_rules:
            if not rule.shape.fullmatch(rule.correction):
                raise ConfigurationError(
                    f"Context rule {rule.label!r} correction {rule.correction!r} "
                    f"does not match its expected shape {rule.expected_shape!r}"
                )

    # ── Queries ───────────────────────────────────────────────────────────────

    def detect_vendors(self, text: str) -> Tuple[VendorProfile, ...]:
        """Vendors whose keyword evidence is present in the document."""
        if not text:
            return ()
        return tuple(v for v in self.vendors if v.is_present(text))

    def vendor(self, name: str) -> Optional[VendorProfile]:
        for v in self.vendors:
            if v.name == name:
                return v
        return None

    def describe(self) -> Dict[str, Any]:
        """Counts per section; used by logging and the /rules endpoint."""
        return {
            "version":            self.version,
            "source":             self.source,
            "character_maps":     len(self.character_maps),
            "word_maps":          len(self.word_maps),
            "context_rules":      len(self.context_rules),
            "vendors":            [v.name for v in self.vendors],
            "vocabulary":         [t.term for t in self.vocabulary],
            "noise_tokens":       len(self.noise_tokens),
            "product_indicators": len(self.product_indicators),
        }
