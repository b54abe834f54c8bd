from datetime import datetime

import pytest

from packages.marketplace_ingestion.models import EntryDirection
from packages.marketplace_ingestion.normalizers import (
    clean_text,
    infer_entry_direction,
    is_blank,
    normalize_date,
    parse_money,
    parse_quantity,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("R$ 1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("-15,50", -15.5),
        ("(10,00)", -10.0),
        ("1.234.567,89", 1234567.89),
        (42, 42.0),
        ("", 0.0),
        (None, 0.0),
        (float("nan"), 0.0),
        ("abc", 0.0),
    ],
)
def test_parse_money_locales(raw, expected):
    assert parse_money(raw) == pytest.approx(expected)


def test_parse_money_rejects_date_like_strings():
    """A date in an amount column must not become a number."""
    assert parse_money("15/03/2024") == 0.0
    assert parse_money("2024-03-15") == 0.0


def test_parse_money_rejects_absurd_values():
    assert parse_money(250_000_000) == 0.0


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("15/03/2024", "2024-03-15"),
        ("2024-03-15", "2024-03-15"),
        ("2024-03-15T10:22:00", "2024-03-15"),
        ("01/11/24 08:00", "2024-11-01"),
        (datetime(2024, 11, 1, 9, 30), "2024-11-01"),
        ("32/01/2024", ""),
        ("", ""),
        ("ontem", ""),
    ],
)
def test_normalize_date(raw, expected):
    assert normalize_date(raw) == expected


def test_text_helpers():
    assert is_blank("   ")
    assert is_blank(float("nan"))
    assert not is_blank(0)
    assert clean_text("  Tarifa \n de  venda ") == "Tarifa de venda"


def test_parse_quantity_never_below_one():
    assert parse_quantity("3 un") == 3
    assert parse_quantity(0) == 1
    assert parse_quantity("") == 1
    assert parse_quantity(2.0) == 2


def test_infer_entry_direction():
    assert infer_entry_direction("Venda", 100.0) is EntryDirection.CREDIT
    assert infer_entry_direction("Tarifa de envio", 12.0) is EntryDirection.DEBIT
    assert infer_entry_direction("Ajuste", -5.0) is EntryDirection.DEBIT
    assert infer_entry_direction("Ajuste", 5.0, type_label="Commission") is EntryDirection.DEBIT
