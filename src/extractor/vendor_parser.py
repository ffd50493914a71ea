"""
Vendor Layout Parser
====================
Looser columnar rows without separators, e.g. minimarket receipts:

    SUNLG 755 1 25,200 25,200        NAME QTY UNIT TOTAL
    AQUA 600ML 2 7,000               NAME QTY TOTAL

Only vendors whose keywords appear in the document are tried. Each
vendor's micro corrections run on the line before its layouts
("SUNLG 755 T 25,200 25,200" → "SUNLG 755 1 25,200 25,200").
"""

from typing import Optional

from extractor.base_parser import BaseParser, DocumentContext, ParseOutcome, clean_name
from line_items import ExtractionMethod
from utils import parse_amount


class VendorLayoutParser(BaseParser):
    """Columnar layouts from vendor profiles, gated by keyword evidence."""

    name = "vendor"
    method = ExtractionMethod.VENDOR_SPECIFIC

    def parse(self, context: DocumentContext, index: int) -> Optional[ParseOutcome]:
        line = context.lines[index]
        for vendor in context.vendors:
            if not vendor.layouts:
                continue

            fixed = vendor.apply_micro_corrections(line)
            for layout in vendor.layouts:
                m = layout.match(fixed)
                if not m:
                    continue

                groups = m.groupdict()
                name = clean_name(groups.get('name'))
                total = parse_amount(groups.get('total'))
                if name is None or total is None:
                    continue

                qty = int(groups['qty']) if groups.get('qty') else 1
                unit = parse_amount(groups.get('unit'))
                consistent = self._consistent(qty, unit, total)
                confidence = self.bands.vendor_consistent if consistent else self.bands.vendor

                candidate = self._build_candidate(
                    name=name,
                    quantity=qty,
                    price=total,
                    confidence=confidence,
                    source=fixed,
                    line_number=index,
                    unit_price=unit,
                )
                if candidate is not None:
                    return ParseOutcome(candidates=[candidate], consumed=(index,))
        return None
