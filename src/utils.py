"""
Utility functions for receipt line-item extraction
"""

import os
import re
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from loguru import logger


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "extraction_config.yaml"

# Money amount as printed on receipts: "6,364", "10.000", "25,200.50", "364", "6.5".
# A single group of exactly three digits after a separator is a thousands group.
AMOUNT_PATTERN = r'\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?'

_CURRENCY_PREFIX = re.compile(r'^(?:Rp\.?|IDR|PHP|USD|[$€£¥₱])\s*', re.IGNORECASE)
_DIGITS_ONLY = re.compile(r'^\d+$')


def expand_amount(pattern: str) -> str:
    """Replace every ``{num}`` placeholder with the shared amount pattern."""
    return pattern.replace("{num}", f"(?:{AMOUNT_PATTERN})")


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse a receipt amount into a Decimal.

    Dots and commas are treated the same way:
      - both present      → the right-most one is the decimal point
      - repeated          → all of them are thousands separators
      - single separator  → thousands when exactly 3 digits follow, decimal otherwise

    Args:
        text: Amount as printed ("6,364", "Rp 10.000", "-2", "1.234,50")

    Returns:
        Decimal value, or None when the text is not an amount
    """
    if text is None:
        return None

    s = _CURRENCY_PREFIX.sub('', str(text).strip()).replace(' ', '')
    if not s:
        return None

    negative = s.startswith('-')
    if negative:
        s = s[1:]

    if '.' in s and ',' in s:
        decimal_sep = '.' if s.rfind('.') > s.rfind(',') else ','
        integer, _, fraction = s.rpartition(decimal_sep)
        integer = integer.replace('.', '').replace(',', '')
    elif '.' in s or ',' in s:
        sep = '.' if '.' in s else ','
        parts = s.split(sep)
        if len(parts) > 2 or len(parts[-1]) == 3:
            integer, fraction = ''.join(parts), ''
        else:
            integer, fraction = parts
    else:
        integer, fraction = s, ''

    if not _DIGITS_ONLY.match(integer) or (fraction and not _DIGITS_ONLY.match(fraction)):
        return None

    try:
        value = Decimal(f"{integer}.{fraction}" if fraction else integer)
    except InvalidOperation:
        return None

    return -value if negative else value


def format_amount(value: Optional[Decimal]) -> Optional[str]:
    """Format an amount with thousands separators ("6,364", "6,364.50")."""
    if value is None:
        return None
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def normalize_engine_confidence(value: Union[float, int, str, None]) -> float:
    """
    Bring an OCR engine confidence into [0, 1].

    Engines report either 0–1 or 0–100; anything above 1 is treated as a
    percentage. Unreadable values count as zero confidence.
    """
    if value is None:
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Unreadable engine confidence {value!r}, using 0.0")
        return 0.0

    if confidence != confidence:  # NaN
        return 0.0
    if confidence > 1.0:
        confidence = confidence / 100.0
    return max(0.0, min(1.0, confidence))


def format_processing_time(milliseconds: int) -> str:
    """
    Format processing time in human-readable format

    Args:
        milliseconds: Time in milliseconds

    Returns:
        Formatted string (e.g., "1.23s", "456ms")
    """
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    else:
        seconds = milliseconds / 1000
        return f"{seconds:.2f}s"


def ensure_directory(dir_path: str) -> str:
    """
    Ensure directory exists, create if it doesn't

    Args:
        dir_path: Directory path

    Returns:
        Absolute path to directory
    """
    path = Path(dir_path)
    path.mkdir(parents=True, exist_ok=True)
    return str(path.absolute())


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """Load service configuration from YAML, falling back to defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not os.path.exists(config_path):
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return default_config()

    with open(config_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    merged = default_config()
    for section, values in config.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def default_config() -> Dict:
    """Return default service configuration"""
    return {
        'logging': {
            'level': 'INFO',
            'file': 'logs/receipt_extraction.log',
        },
        'rules': {
            'path': None,
        },
        'api': {
            'host': '0.0.0.0',
            'port': 8000,
            'include_diagnostics': True,
        },
    }


# Logging setup helper
def setup_logging(log_file: str = "logs/receipt_extraction.log", level: str = "INFO"):
    """
    Setup logging configuration

    Args:
        log_file: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    # Remove default handler
    logger.remove()

    # Add console handler
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=level
    )

    # Add file handler
    ensure_directory(os.path.dirname(log_file) or ".")
    logger.add(
        log_file,
        rotation="10 MB",
        retention="30 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
    )

    logger.info("Logging initialized")
