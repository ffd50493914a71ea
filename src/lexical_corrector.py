"""
Lexical Corrector
Repairs systematic OCR damage in receipt text before layout parsing.

Layers, applied one line at a time and in this order:
1. Character: single glyph/token swaps, only inside their declared
   context ("T x @" → "1 x @", "R,364" → "6,364", TENLEK → TEKLEK,
   T0TAL → TOTAL). A "T" inside a product name is never touched.
2. Word: whole-phrase swaps ("@ MIE GACOAN" → "MIE GACOAN"), only for
   rules at or above the word confidence threshold (0.9).
3. Context: a known label followed by a malformed value gets the rule's
   correction ("Sub Total : Ex 729" → "Sub Total : 52,729").

Artifact cleanup follows: symbols outside the allowed set, noise
fragments, punctuation clusters, split thousands groups ("46, 364"),
trailing "=", repeated whitespace and blank lines.

The layers and the cleanup are repeated until the text stops changing,
so correct(correct(x)) == correct(x).
"""

import re
from typing import Dict, FrozenSet, List, Optional

from loguru import logger

from rule_set import RuleSet


_MAX_PASSES = 8

# Letters, digits, whitespace, currency markers and common separators survive.
_DISALLOWED      = re.compile(r"[^\w\s.,:;@=+\-()/%#&'*$€£¥₱]")
_PUNCT_CLUSTER   = re.compile(r'(?<!\S)[.\-_=~*:;,]{2,}(?!\S)')
_SPLIT_THOUSANDS = re.compile(r'(\d),\s+(\d{3})(?![\d])')
_TRAILING_EQUALS = re.compile(r'\s*=+$')
_WHITESPACE      = re.compile(r'\s+')


class LexicalCorrector:
    """
    Rule-driven OCR text correction.

    All rule data comes from the RuleSet; the corrector itself holds no
    mutable state and can be shared freely.
    """

    def __init__(self, rule_set: Optional[RuleSet] = None):
        self.rules = rule_set if rule_set is not None else RuleSet.from_yaml()
        self.word_min_confidence = self.rules.thresholds.word_min_confidence
        self.context_min_confidence = self.rules.thresholds.context_min_confidence

        logger.debug(
            f"[LexicalCorrector] rules v{self.rules.version}: "
            f"{len(self.rules.character_maps)} character, "
            f"{len(self.rules.word_maps)} word, "
            f"{len(self.rules.context_rules)} context"
        )

    # ── Public entry point ────────────────────────────────────────────────────

    def correct(self, text: Optional[str]) -> str:
        """
        Correct a whole OCR document.

        Args:
            text: Raw OCR text, lines separated by newlines

        Returns:
            Corrected text ("" for None / empty input)
        """
        if not text:
            return ""
        if not isinstance(text, str):
            text = str(text)

        current = text
        for _ in range(_MAX_PASSES):
            corrected = self._single_pass(current)
            if corrected == current:
                break
            current = corrected
        else:
            logger.warning(
                f"[LexicalCorrector] text still changing after {_MAX_PASSES} passes"
            )

        if current != text:
            logger.debug(f"[LexicalCorrector] corrected {len(text)} → {len(current)} chars")
        return current

    def correct_line(self, line: str, vendors: Optional[FrozenSet[str]] = None) -> str:
        """Correct one line. Vendor-scoped rules only apply for the given vendors."""
        if not line:
            return ""
        vendors = vendors if vendors is not None else self._vendor_names(line)
        current = line
        for _ in range(_MAX_PASSES):
            corrected = self._correct_line_once(current, vendors)
            if corrected == current:
                break
            current = corrected
        return current

    def correct_all_lines(self, lines: List[str]) -> List[str]:
        """Correct every line, using the vendor evidence of all lines together."""
        vendors = self._vendor_names('\n'.join(lines))
        return [self.correct_line(line, vendors) for line in lines]

    def get_correction_report(self, lines: List[str]) -> Dict:
        """Get a report of corrections made."""
        corrections = []
        for i, (line, corrected) in enumerate(zip(lines, self.correct_all_lines(lines))):
            if corrected != line:
                corrections.append({
                    'line_number': i + 1,
                    'original': line,
                    'corrected': corrected,
                })
        return {
            'total_lines': len(lines),
            'lines_corrected': len(corrections),
            'correction_rate': len(corrections) / len(lines) if lines else 0,
            'corrections': corrections,
        }

    # ── Layers ────────────────────────────────────────────────────────────────

    def apply_character_layer(self, line: str) -> str:
        """Swap corrupted glyphs, each only inside its declared context."""
        for rule in self.rules.character_maps:
            if rule.line_gate is not None and not rule.line_gate.search(line):
                continue
            fixed, count = rule.matcher.subn(lambda _m: rule.correction, line)
            if count:
                logger.debug(
                    f"[LexicalCorrector] char {rule.pattern!r}→{rule.correction!r} "
                    f"({rule.context}) x{count}: {line!r}"
                )
                line = fixed
        return line

    def apply_word_layer(self, line: str, vendors: FrozenSet[str] = frozenset()) -> str:
        """Replace whole corrupted phrases from high-confidence word maps."""
        for rule in self.rules.word_maps:
            if rule.confidence < self.word_min_confidence:
                continue
            if rule.vendor is not None and rule.vendor not in vendors:
                continue
            fixed, count = rule.matcher.subn(lambda _m: rule.correction, line)
            if count:
                logger.debug(
                    f"[LexicalCorrector] word {rule.pattern!r}→{rule.correction!r}: {line!r}"
                )
                line = fixed
        return line

    def apply_context_layer(self, line: str, vendors: FrozenSet[str] = frozenset()) -> str:
        """Replace a malformed value that follows a recognised label."""
        for rule in self.rules.context_rules:
            if rule.confidence < self.context_min_confidence:
                continue
            if rule.vendor is not None and rule.vendor not in vendors:
                continue
            m = rule.matcher.match(line)
            if not m or rule.shape.fullmatch(m.group('value')):
                continue
            logger.debug(
                f"[LexicalCorrector] context {rule.label!r}: "
                f"{m.group('value')!r}→{rule.correction!r}"
            )
            line = m.group('head') + rule.correction
        return line

    def cleanup_line(self, line: str) -> str:
        """Strip OCR artifacts from a single line."""
        line = _DISALLOWED.sub(' ', line)
        if self.rules.noise_matcher is not None:
            line = self.rules.noise_matcher.sub(' ', line)
        line = _PUNCT_CLUSTER.sub(' ', line)
        line = _SPLIT_THOUSANDS.sub(r'\1,\2', line)
        line = _TRAILING_EQUALS.sub('', line)
        return _WHITESPACE.sub(' ', line).strip()

    def cleanup_artifacts(self, text: str) -> str:
        """Clean every line and drop the ones left empty."""
        lines = (self.cleanup_line(line) for line in text.splitlines())
        return '\n'.join(line for line in lines if line)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _vendor_names(self, text: str) -> FrozenSet[str]:
        return frozenset(v.name for v in self.rules.detect_vendors(text))

    def _correct_line_once(self, line: str, vendors: FrozenSet[str]) -> str:
        line = self.apply_character_layer(line)
        line = self.apply_word_layer(line, vendors)
        line = self.apply_context_layer(line, vendors)
        return self.cleanup_line(line)

    def _single_pass(self, text: str) -> str:
        vendors = self._vendor_names(text)
        lines = (self._correct_line_once(line, vendors) for line in text.splitlines())
        return '\n'.join(line for line in lines if line)


def main():
    """Correct a few sample receipt lines and print the result."""
    corrector = LexicalCorrector()

    samples = [
        "R ES TENLEK .- T x @ R,364 R,364",
        "ES TEKLEK T x46, 364 R,364 MIE GACOAN T x @ 10,000 10,000",
        "SEN STOMAY AYAM R 1x @ 9,091 9,091",
        "Sub Total : Ex 729",
        "T0TAL: Rp 25.000",
        "Tanggal: 09-09-24",
    ]

    print("\n" + "=" * 70)
    print("LEXICAL CORRECTOR")
    print("=" * 70 + "\n")
    corrected = corrector.correct('\n'.join(samples)).split('\n')
    for original, fixed in zip(samples, corrected):
        print(f"  {original!r}")
        print(f"→ {fixed!r}\n")


if __name__ == "__main__":
    main()
