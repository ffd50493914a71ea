"""
Tests for amount parsing, confidence normalisation and config loading
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from utils import (
    default_config,
    expand_amount,
    format_amount,
    format_processing_time,
    load_config,
    normalize_engine_confidence,
    parse_amount,
)


@pytest.mark.parametrize("text, expected", [
    ("6,364", Decimal("6364")),
    ("10.000", Decimal("10000")),
    ("1,234,567", Decimal("1234567")),
    ("25,200.50", Decimal("25200.50")),
    ("1.234,50", Decimal("1234.50")),
    ("6.5", Decimal("6.5")),
    ("364", Decimal("364")),
    ("Rp 10.000", Decimal("10000")),
    ("-2", Decimal("-2")),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", [None, "", "abc", "12a", "Rp"])
def test_parse_amount_rejects_non_amounts(text):
    assert parse_amount(text) is None


def test_expand_amount_placeholder():
    pattern = expand_amount(r'^{num}$')
    assert "{num}" not in pattern
    assert pattern.startswith("^(?:")


def test_format_amount():
    assert format_amount(Decimal("6364")) == "6,364"
    assert format_amount(Decimal("1234.5")) == "1,234.50"
    assert format_amount(None) is None


@pytest.mark.parametrize("value, expected", [
    (0.8, 0.8),
    (92.5, 0.925),
    (100, 1.0),
    (150, 1.0),
    (-3, 0.0),
    (None, 0.0),
    ("abc", 0.0),
    (float("nan"), 0.0),
    ("0.7", 0.7),
])
def test_normalize_engine_confidence(value, expected):
    assert normalize_engine_confidence(value) == pytest.approx(expected)


def test_format_processing_time():
    assert format_processing_time(456) == "456ms"
    assert format_processing_time(1234) == "1.23s"


def test_load_config_missing_file_uses_defaults(tmp_path):
    assert load_config(tmp_path / "missing.yaml") == default_config()


def test_load_config_merges_over_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("api:\n  port: 9000\n", encoding="utf-8")

    config = load_config(config_file)

    assert config['api']['port'] == 9000
    assert config['api']['host'] == '0.0.0.0'
    assert config['logging']['level'] == 'INFO'
    assert config['rules']['path'] is None


def test_shipped_config_loads():
    config = load_config()
    assert config['rules']['path'] is None
    assert config['api']['include_diagnostics'] is True
