"""Derived survey quantities: route length and observation-point count."""

from __future__ import annotations

import logging
import math
import re

from surveydoc.config import settings
from surveydoc.errors import AmbiguousQuantity

logger = logging.getLogger("surveydoc.quantities")

_HECTARES = re.compile(r"(\d+(?:[.,]\d+)?)\s*га\b", re.IGNORECASE)
_AREA_HECTARES = re.compile(r"площад[^\n]{0,80}?(\d+(?:[.,]\d+)?)\s*га\b", re.IGNORECASE)
_LENGTH_KM = re.compile(r"(?:протяженн\w*|длин\w*)[^\d]{0,40}(\d+(?:[.,]\d+)?)\s*км\b", re.IGNORECASE)
_LENGTH_M = re.compile(r"(?:протяженн\w*|длин\w*)[^\d]{0,40}(\d+(?:[.,]\d+)?)\s*м\b", re.IGNORECASE)
_LINEAR_OBJECT = re.compile(
    r"(трасс\w*|протяженн\w*|линейн\w*|дорог\w*|улиц\w*|проезд\w*|шоссе|волс|кабель|сети\s+связи|линии\s+связи)",
    re.IGNORECASE,
)
_BLANK_QUANTITIES = {"", "-", "–"}


def parse_number(value: str | float | int | None) -> float | None:
    """Parse a decimal-comma or decimal-point number; blanks and dashes mean "no value".

    Raises ``AmbiguousQuantity`` for tokens that are present but not numeric.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, bool) or not math.isfinite(value):
            raise AmbiguousQuantity(f"not a finite number: {value!r}")
        return float(value)
    token = str(value).replace("\u00a0", " ").strip()
    if token in _BLANK_QUANTITIES:
        return None
    try:
        number = float(token.replace(" ", "").replace(",", "."))
    except ValueError as exc:
        raise AmbiguousQuantity(f"cannot parse quantity {token!r}") from exc
    if not math.isfinite(number):
        raise AmbiguousQuantity(f"not a finite number: {token!r}")
    return number


def format_decimal_comma(value: float, digits: int) -> str:
    return f"{value:.{digits}f}".replace(".", ",")


def format_quantity(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return format_decimal_comma(value, 2).rstrip("0").rstrip(",")


def parse_hectares(text: str | None) -> float | None:
    source = str(text or "").replace("\u00a0", " ")
    match = _HECTARES.search(source) or _AREA_HECTARES.search(source)
    if match is None:
        return None
    value = float(match.group(1).replace(",", "."))
    return value if value > 0 else None


def explicit_length_km(text: str | None) -> float | None:
    source = str(text or "").replace("\u00a0", " ")
    match = _LENGTH_KM.search(source)
    if match:
        value = float(match.group(1).replace(",", "."))
        if value > 0:
            return value
    match = _LENGTH_M.search(source)
    if match:
        value = float(match.group(1).replace(",", "."))
        if value > 0:
            return value / 1000
    return None


def infer_is_linear(*texts: str | None, communication_networks: bool = False) -> bool:
    if communication_networks:
        return True
    return bool(_LINEAR_OBJECT.search(" ".join(str(text or "") for text in texts)))


def resolve_area_ha(*candidates: float | str | None) -> float:
    """First positive area among the candidates, else the configured default site area."""
    for candidate in candidates:
        if candidate is None:
            continue
        value = candidate if isinstance(candidate, (int, float)) else parse_hectares(candidate)
        if value is not None and math.isfinite(value) and value > 0:
            return float(value)
    logger.info(
        "site_area_defaulted",
        extra={"event": "site_area_defaulted", "area_ha": settings.default_site_area_ha},
    )
    return settings.default_site_area_ha


def route_length_km(area_ha: float, *, is_linear: bool, source_text: str | None = None) -> float:
    """Walking-traverse length for a site, rounded to 0.1 km and never below the minimum."""
    area_m2 = area_ha * 10000
    if is_linear:
        length = explicit_length_km(source_text)
        if length is None:
            length = area_m2 / settings.assumed_corridor_width_m / 1000
    else:
        # Circumference of a circle with the same area.
        length = 2 * math.sqrt(math.pi * area_m2) / 1000
    return max(settings.min_route_length_km, math.floor(length * 10 + 0.5) / 10)


def observation_points(area_ha: float) -> int:
    if not math.isfinite(area_ha) or area_ha <= 0:
        return 1
    return max(1, math.ceil(area_ha / settings.observation_point_area_ha))
