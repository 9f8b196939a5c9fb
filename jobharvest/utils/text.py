from __future__ import annotations

import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


NOISE_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "ref", "gclid", "fbclid"}


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def clean_value(value: Any) -> str | None:
    """Collapse whitespace in a scalar and return None when nothing is left."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    if isinstance(value, bool):
        return None
    text = normalize_whitespace(str(value))
    return text or None


def canonicalize_url(url: str) -> str:
    try:
        parsed = urlparse(url)
    except ValueError:
        return url.strip()
    query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in NOISE_PARAMS]
    clean = parsed._replace(query=urlencode(query), fragment="")
    return urlunparse(clean)


def to_number(value: Any) -> float | None:
    """Parse loosely formatted numbers such as ``"32 000"``, ``"30,000"`` or ``"1.234,56"``.

    A trailing separator followed by one or two digits is the decimal mark;
    every other comma, dot or space groups thousands.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = re.sub(r"[^\d,.\-]", "", str(value))
    if not text:
        return None
    decimals = re.search(r"[,.](\d{1,2})$", text)
    if decimals:
        whole = re.sub(r"[,.]", "", text[: decimals.start()])
        text = f"{whole}.{decimals.group(1)}"
    else:
        text = re.sub(r"[,.]", "", text)
    try:
        return float(text)
    except ValueError:
        return None


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
