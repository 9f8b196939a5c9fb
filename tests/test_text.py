from __future__ import annotations

from jobharvest.utils.text import canonicalize_url, to_number


def test_thousands_and_decimal_separators_are_told_apart() -> None:
    assert to_number("30,000") == 30000.0
    assert to_number("1.234,56") == 1234.56
    assert to_number("1,234.56") == 1234.56
    assert to_number("1 800") == 1800.0
    assert to_number("32 000 €") == 32000.0
    assert to_number("11,65") == 11.65
    assert to_number("45000.00") == 45000.0


def test_unparseable_numbers_are_none() -> None:
    assert to_number(None) is None
    assert to_number(True) is None
    assert to_number("à négocier") is None
    assert to_number(2500) == 2500.0


def test_canonicalize_url_drops_tracking_and_tolerates_bad_input() -> None:
    assert canonicalize_url("https://www.randstad.fr/emploi/a_1/?utm_source=x&q=data#top") == (
        "https://www.randstad.fr/emploi/a_1/?q=data"
    )
    assert canonicalize_url("http://[bad") == "http://[bad"
