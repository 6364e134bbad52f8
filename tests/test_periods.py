from datetime import date

import pytest

from periods import Month, month_of, parse_month, resolve_month


def test_month_bounds_cover_whole_month() -> None:
    feb = parse_month("2024-02")
    assert feb.key == "2024-02"
    assert feb.start == date(2024, 2, 1)
    assert feb.end == date(2024, 2, 29)

    dec = Month(2023, 12)
    assert dec.end == date(2023, 12, 31)
    assert str(dec) == "2023-12"


def test_parse_month_rejects_malformed_values() -> None:
    for value in ("2024-13", "2024-5", "24-05", "", "2024/05"):
        with pytest.raises(ValueError):
            parse_month(value)


def test_resolve_month_defaults_to_current() -> None:
    assert resolve_month(None, today=date(2024, 7, 15)) == Month(2024, 7)
    assert resolve_month("2024-01", today=date(2024, 7, 15)) == Month(2024, 1)
    assert month_of(date(2024, 5, 31)).key == "2024-05"
