"""
Extraction Orchestrator
Drives correction, line classification and parser fallback over one
receipt document.

Workflow:
1. Correct the raw OCR text once (LexicalCorrector)
2. Split into lines and classify each (item / keep / skip)
3. Run the layout strategies per non-skipped line, in priority order;
   the first strategy producing candidates wins that line
4. Collect candidates in document order
5. Total: explicit grand total → subtotal + tax → sum of candidate prices
6. Overall confidence: engine confidence blended with the mean
   candidate confidence
7. Word boxes, when supplied, are linked to the candidates they show
   (diagnostics only)

extract() is a pure function of (raw text, engine confidence, RuleSet)
and never raises on unparsable input.
"""

import re
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from extractor import DocumentContext, LineClassifier, LineKind, ParserFactory
from lexical_corrector import LexicalCorrector
from line_items import ExtractionResult, LineItemCandidate, OcrWord
from rule_set import RuleSet, VendorProfile
from utils import AMOUNT_PATTERN, format_processing_time, normalize_engine_confidence, parse_amount

# value right after a summary label: an optional rate ("10%", "10 :"), an
# optional separator and currency, then the first amount
_LABELLED_VALUE = re.compile(
    r'\s*(?:\(?\d{1,2}(?:[.,]\d+)?\s*%\)?\s*|\d{1,2}\s*(?=[:=]))?'
    r'[:=]?\s*(?:Rp\.?|IDR)?\s*'
    rf'(?P<amount>-?(?:{AMOUNT_PATTERN}))(?![\w.,%])',
    re.IGNORECASE,
)


class ExtractionOrchestrator:
    """
    Whole-document line-item extraction.

    The RuleSet is shared read-only, so one orchestrator can serve
    concurrent extract() calls.
    """

    def __init__(self, rule_set: Optional[RuleSet] = None):
        self.rules = rule_set if rule_set is not None else RuleSet.from_yaml()
        self.corrector = LexicalCorrector(self.rules)
        self.classifier = LineClassifier(self.rules)
        self.factory = ParserFactory(self.rules)
        self.chain = self.factory.chain()

        logger.info(
            f"Extraction orchestrator ready (rules v{self.rules.version}, "
            f"strategies: {', '.join(p.name for p in self.chain)})"
        )

    # ── Public entry point ────────────────────────────────────────────────────

    def extract(
        self,
        raw_text: Optional[str],
        engine_confidence: Any = 0.0,
        words: Optional[Sequence[OcrWord]] = None,
    ) -> ExtractionResult:
        """
        Extract line items from one OCR document.

        Args:
            raw_text: Raw OCR text (None / empty is not an error)
            engine_confidence: Overall engine confidence, 0–1 or 0–100
            words: Optional per-word engine output or text blocks, diagnostics only

        Returns:
            ExtractionResult with candidates in document order
        """
        start_time = time.time()
        raw = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))
        engine = normalize_engine_confidence(engine_confidence)

        diagnostics: Dict[str, Any] = {"rule_set_version": self.rules.version}
        if words:
            diagnostics["words"] = self._word_statistics(words)

        if not raw.strip():
            logger.info("Empty OCR text, no items to extract")
            diagnostics["lines"] = []
            return ExtractionResult(
                raw_text=raw,
                corrected_text="",
                candidates=[],
                total_amount=None,
                overall_confidence=0.0,
                diagnostics=diagnostics,
            )

        corrected = self.corrector.correct(raw)
        lines = corrected.split('\n') if corrected else []
        vendors = self.rules.detect_vendors(corrected)
        context = DocumentContext(lines=tuple(lines), vendors=vendors)

        candidates, line_report = self._parse_lines(context)
        if words:
            diagnostics["word_links"] = self._link_words(candidates, words, vendors)
        total_amount = self._total_amount(lines, candidates)
        overall = self._overall_confidence(engine, candidates)

        processing_time_ms = int((time.time() - start_time) * 1000)
        diagnostics.update({
            "vendors": [v.name for v in vendors],
            "lines": line_report,
            "processing_time": format_processing_time(processing_time_ms),
        })

        logger.info(
            f"[ExtractionOrchestrator] lines={len(lines)} items={len(candidates)} "
            f"total={total_amount} confidence={overall:.2f} "
            f"vendors={[v.name for v in vendors]} in {format_processing_time(processing_time_ms)}"
        )

        return ExtractionResult(
            raw_text=raw,
            corrected_text=corrected,
            candidates=candidates,
            total_amount=total_amount,
            overall_confidence=overall,
            diagnostics=diagnostics,
        )

    # ── Line parsing ──────────────────────────────────────────────────────────

    def _parse_lines(
        self, context: DocumentContext
    ) -> Tuple[List[LineItemCandidate], List[Dict[str, Any]]]:
        candidates: List[LineItemCandidate] = []
        report: List[Dict[str, Any]] = []
        consumed = set()

        for index, line in enumerate(context.lines):
            entry = {"line_number": index, "text": line, "kind": None, "strategy": None, "items": 0}
            report.append(entry)

            if index in consumed:
                entry["kind"] = "consumed"
                continue

            kind = self.classifier.classify(line)
            entry["kind"] = kind.value
            if kind is LineKind.SKIP:
                continue

            for parser in self.chain:
                try:
                    outcome = parser.parse(context, index)
                except Exception as e:
                    logger.warning(
                        f"[ExtractionOrchestrator] {parser.__class__.__name__} failed "
                        f"on line {index} {line!r}: {e}"
                    )
                    continue
                if outcome and outcome.candidates:
                    candidates.extend(outcome.candidates)
                    consumed.update(outcome.consumed)
                    entry["strategy"] = parser.name
                    entry["items"] = len(outcome.candidates)
                    break

        return candidates, report

    # ── Totals & confidence ───────────────────────────────────────────────────

    def _total_amount(
        self, lines: List[str], candidates: List[LineItemCandidate]
    ) -> Optional[Decimal]:
        """Grand total label → subtotal + tax → sum of candidate prices → None."""
        patterns = self.rules.totals

        for pattern in patterns.grand_total:
            for line in lines:
                amount = self._labelled_amount(pattern, line)
                if amount is not None and amount > 0:
                    return amount

        subtotal = self._first_labelled(patterns.subtotal, lines)
        tax = self._first_labelled(patterns.tax, lines)
        if subtotal is not None and tax is not None:
            return subtotal + tax

        if candidates:
            return sum((c.price for c in candidates), Decimal(0))
        return None

    def _first_labelled(self, patterns, lines: List[str]) -> Optional[Decimal]:
        for pattern in patterns:
            for line in lines:
                amount = self._labelled_amount(pattern, line)
                if amount is not None:
                    return amount
        return None

    @staticmethod
    def _labelled_amount(pattern, line: str) -> Optional[Decimal]:
        """
        First amount following the label, or None when the label is absent
        or not directly followed by a value.
        """
        m = pattern.search(line)
        if not m:
            return None
        value = _LABELLED_VALUE.match(line, m.end())
        if not value:
            return None
        return parse_amount(value.group('amount'))

    def _overall_confidence(self, engine: float, candidates: List[LineItemCandidate]) -> float:
        if not candidates:
            return round(engine, 4)
        weights = self.rules.scoring.overall
        mean = sum(c.confidence for c in candidates) / len(candidates)
        blended = weights.engine * engine + weights.items * mean
        return round(max(0.0, min(1.0, blended)), 4)

    def _link_words(
        self,
        candidates: List[LineItemCandidate],
        words: Sequence[OcrWord],
        vendors: Sequence[VendorProfile],
    ) -> List[Dict[str, Any]]:
        """
        Attach engine words / text blocks to the candidate they show.

        A block belongs to the first candidate whose name it contains, or
        whose words overlap the block's words by more than 0.7 (Jaccard).
        Block text is corrected with the document's vendor rules first.
        """
        links = [
            {"index": i, "name": c.name, "line_number": c.line_number, "words": []}
            for i, c in enumerate(candidates)
        ]
        vendor_names = frozenset(v.name for v in vendors)
        names = [c.name.casefold().strip() for c in candidates]

        for word in words:
            block = self.corrector.correct_line(word.text or "", vendor_names).casefold().strip()
            if not block:
                continue
            for i, name in enumerate(names):
                if (name and name in block) or _word_overlap(block, name) > 0.7:
                    links[i]["words"].append({
                        "text": word.text,
                        "confidence": normalize_engine_confidence(word.confidence),
                        "bbox": word.bbox,
                    })
                    break
        return links

    def _word_statistics(self, words: Sequence[OcrWord]) -> Dict[str, Any]:
        threshold = self.rules.thresholds.low_confidence_word
        confidences = [normalize_engine_confidence(w.confidence) for w in words]
        return {
            "count": len(words),
            "mean_confidence": round(sum(confidences) / len(confidences), 4) if confidences else 0.0,
            "low_confidence": [w.text for w, c in zip(words, confidences) if c < threshold],
        }


def _word_overlap(a: str, b: str) -> float:
    words_a, words_b = set(a.split()), set(b.split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)
