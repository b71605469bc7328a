"""Deterministic keyword/pattern extraction over Russian source texts.

Every detector here is the fallback used when the model-backed extractor is
unavailable or returns something unusable, so each one must work on raw
order / terms-of-reference text without any model help.
"""

from __future__ import annotations

import re

from surveydoc.errors import AmbiguousQuantity
from surveydoc.facts import FactSet, LayersData, ObjectTypeFlags, SERVICE_ROWS, ServiceQuantities, SoilLayer
from surveydoc.quantities import parse_number

_FLAGS = re.IGNORECASE

SURFACE_WATER = re.compile(r"(поверхностн\w*\s+вод|проб\w*\s+вод\w*\s+поверхностн)", _FLAGS)
GROUND_WATER = re.compile(r"(подземн\w*\s+вод|грунтов\w*\s+вод)", _FLAGS)
WATER_SAMPLING = re.compile(r"(отбор\s+проб\s+вод|пробы\s+вод|исследован\w*\s+вод)", _FLAGS)
SEDIMENT = re.compile(r"(донн\w*\s+отложен|проб\w*\s+донн\w*|отбор\s+проб\s+донн)", _FLAGS)
AIR = re.compile(r"(атмосферн\w*\s+воздух|проб\w*\s+воздух|приземн\w*\s+атмосфер)", _FLAGS)
PHYSICAL_IMPACTS = re.compile(r"(шум|вибрац|электромагнит|\bэмп\b|магнитн\w*\s+пол|электрическ\w*\s+пол)", _FLAGS)
BUILDING_SURVEY = re.compile(r"(обследован\w*\s+здан|в\s+здании|радиометрическ\w*\s+обследован\w*\s+здан)", _FLAGS)
RADON_FLUX = re.compile(r"(ппр|плотност\w*\s+поток\w*\s+радон|потоков\s+радона)", _FLAGS)
GAS_GEOCHEMISTRY = re.compile(r"(газогеохим|шпуров\w*\s+газов|грунтов\w*\s+воздух|биогаз)", _FLAGS)
NETWORKS_BY_NAME = re.compile(r"(сети\s+связи|линии\s+связи|волс|кабель\s+связи)", _FLAGS)

COMMUNICATION_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (r"сет[а-яё]*\s+связи", r"лини[а-яё]*\s+связи", r"кабел[а-яё]*\s+связи", r"волс", r"оптоволокн", r"телекоммуникаци")
)
ROAD_PATTERNS = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (r"дорог", r"путепровод", r"тоннел", r"туннел", r"эстакад", r"мост", r"развязк", r"переезд", r"автомагистрал")
)

LAYER_WITH_PLATFORMS = re.compile(r"[Вв]\s*слое\s*(\d+[.,]\d+)\s*[-–]\s*(\d+[.,]\d+)\s*\(([0-9,\s]+)\)")
LAYER_WITH_COUNT = re.compile(r"(?:в\s+слое\s+)?(\d+[.,]\d+)\s*[-–]\s*(\d+[.,]\d+)\s*м?\s*[-–—]\s*(\d+)\s*(?:шт|проб)?", _FLAGS)
PLATFORM_COUNT = re.compile(r"(?:с\s+)?(\d+)\s+пробн\w*\s+площад", _FLAGS)
BOREHOLE_COUNT = re.compile(r"(?:из\s+)?(\d+)\s+(?:геоэкологическ\w*\s+)?скважин", _FLAGS)

SITE_AREA_SENTENCE = re.compile(r"(Площад[^.\n]{0,180}?\d+(?:[.,]\d+)?\s*га\.)", _FLAGS)

CYSTS = re.compile(r"цист\w*\s+(?:кишечн\w*\s+патоген\w*\s+)?просте(йш|и)\w*", _FLAGS)
CYST_WORD = re.compile(r"цист\w*", _FLAGS)
PROTOZOA_WORD = re.compile(r"просте(йш|и)\w*", _FLAGS)
CYST_PHRASE = re.compile(r",\s*цист\w*\s+просте(йш|и)\w*", _FLAGS)

FORECAST_INLINE = re.compile(
    r"требования\s+к\s+составлению\s+прогноза\s+изменения\s+природных\s+условий\s+(.+?)"
    r"(?=требования\s+о\s+подготовке|требования\s+по\s+обеспечению|$)",
    re.IGNORECASE | re.DOTALL,
)
FORECAST_HEADER = re.compile(r"требования\s+к\s+составлению\s+прогноза", _FLAGS)
FORECAST_STOP = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"^требования\s+о\s+подготовке\s+предложений",
        r"^требования\s+по\s+обеспечению\s+контроля",
        r"^состав\s+и\s+содержание",
        r"^перечень",
    )
)
DEFAULT_FORECAST_TEXT = "Не требуется"

POLLUTION_SOURCES_HEADER = re.compile(r"Сведения о существующих и возможных источниках\s+загрязнения окружающей среды", _FLAGS)
POLLUTION_SOURCES_END = tuple(
    re.compile(pattern, _FLAGS)
    for pattern in (
        r"Общие технические решения",
        r"Сведения о возможных аварийных",
        r"Объемы изъятия природных ресурсов",
        r"Ситуационный план",
        r"Географические координаты",
    )
)

SAMPLE_GROUPS = (
    ("исследование состояния почв", "soil"),
    ("исследование состояния донных отложений", "sediment"),
    ("исследование загрязнения поверхностных вод", "surface_water"),
    ("исследование загрязнения подземных вод", "ground_water"),
    ("исследование загрязнения атмосферного воздуха", "air"),
)

# Order line keywords -> price-list service, first match wins.
_SERVICE_KEYWORDS = (
    ("radon_flux_points", re.compile(r"(ппр|радон)", _FLAGS)),
    ("soil_flies", re.compile(r"(мух|личин|куколок)", _FLAGS)),
    ("soil_microbiology", re.compile(r"(микробиолог|паразитолог|бактери|гельминт|колиформ)", _FLAGS)),
    ("soil_toxicity", re.compile(r"(токсич|биотест)", _FLAGS)),
    ("sediment", SEDIMENT),
    ("surface_water", re.compile(r"поверхностн\w*\s+вод", _FLAGS)),
    ("ground_water", GROUND_WATER),
    ("radiometry_ha", re.compile(r"(гамма|радиометр|мэд)", _FLAGS)),
    ("soil", re.compile(r"(почв|грунт)", _FLAGS)),
)


def _lower(text: str | None) -> str:
    return str(text or "").replace("\u00a0", " ").lower()


def detect_facts(order_text: str | None, object_name: str | None = None) -> FactSet:
    text = _lower(order_text)
    has_surface_water = bool(SURFACE_WATER.search(text))
    has_ground_water = bool(GROUND_WATER.search(text))
    return FactSet(
        has_water_sampling=has_surface_water or has_ground_water or bool(WATER_SAMPLING.search(text)),
        has_sediment_sampling=bool(SEDIMENT.search(text)),
        has_air_sampling=bool(AIR.search(text)),
        has_physical_impacts=bool(PHYSICAL_IMPACTS.search(text)),
        has_building_survey=bool(BUILDING_SURVEY.search(text)),
        is_communication_networks_object=is_networks_object(object_name),
        has_radon_flux=bool(RADON_FLUX.search(text)),
        has_gas_geochemistry=bool(GAS_GEOCHEMISTRY.search(text)),
        has_surface_water=has_surface_water,
        has_ground_water=has_ground_water,
    )


def is_networks_object(object_name: str | None) -> bool:
    return bool(NETWORKS_BY_NAME.search(_lower(object_name)))


def detect_object_type(object_name: str | None) -> ObjectTypeFlags:
    name = _lower(object_name)
    return ObjectTypeFlags(
        is_linear_communication=any(pattern.search(name) for pattern in COMMUNICATION_PATTERNS),
        is_road_object=any(pattern.search(name) for pattern in ROAD_PATTERNS),
    )


def _decimal(token: str) -> float:
    return float(token.replace(",", "."))


def parse_layers(order_text: str | None) -> LayersData | None:
    """Soil layers from an order: "в слое 0,2-1,0 (1,4,5)" first, then "0,2-1,0 м – 5 шт"."""
    text = str(order_text or "")
    # A depth range repeated within one order is counted once.
    platforms_by_range: dict[tuple[float, float], list[int]] = {}
    for match in LAYER_WITH_PLATFORMS.finditer(text):
        depth_from, depth_to = _decimal(match.group(1)), _decimal(match.group(2))
        platforms = [int(token) for token in re.split(r"[,\s]+", match.group(3)) if token.isdigit() and int(token) > 0]
        if depth_from < depth_to and platforms:
            known = platforms_by_range.setdefault((depth_from, depth_to), [])
            for number in platforms:
                if number not in known:
                    known.append(number)
    layers = [
        SoilLayer(depth_from=depth_from, depth_to=depth_to, sample_count=len(platforms), platform_numbers=platforms)
        for (depth_from, depth_to), platforms in platforms_by_range.items()
    ]

    if not layers:
        counts_by_range: dict[tuple[float, float], int] = {}
        for match in LAYER_WITH_COUNT.finditer(text):
            depth_from, depth_to = _decimal(match.group(1)), _decimal(match.group(2))
            if depth_from < depth_to:
                counts_by_range.setdefault((depth_from, depth_to), int(match.group(3)))
        layers = [
            SoilLayer(depth_from=depth_from, depth_to=depth_to, sample_count=count)
            for (depth_from, depth_to), count in counts_by_range.items()
        ]

    if not layers:
        return None

    layers.sort(key=lambda layer: layer.depth_from)
    platform_match = PLATFORM_COUNT.search(text)
    borehole_match = BOREHOLE_COUNT.search(text)
    surface_platforms = int(platform_match.group(1)) if platform_match else 0
    boreholes = int(borehole_match.group(1)) if borehole_match else 0
    return LayersData(
        layers=layers,
        surface_platform_count=surface_platforms or layers[0].sample_count,
        total_borehole_count=boreholes or surface_platforms or layers[0].sample_count,
    )


def site_area_sentence(text: str | None) -> str | None:
    match = SITE_AREA_SENTENCE.search(str(text or "").replace("\u00a0", " "))
    if match is None:
        return None
    return " ".join(match.group(1).split())


def mentions_cysts(order_text: str | None) -> bool:
    text = _lower(order_text)
    if CYSTS.search(text):
        return True
    return bool(CYST_WORD.search(text) and PROTOZOA_WORD.search(text))


def remove_cyst_phrase(line: str) -> str:
    cleaned = CYST_PHRASE.sub("", str(line or ""))
    cleaned = re.sub(r"\s+,\s+,", ", ", cleaned)
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def forecast_requirements(tz_text: str | None) -> str:
    """Terms-of-reference text for forecasting natural-condition changes."""
    text = str(tz_text or "")
    inline = FORECAST_INLINE.search(text)
    if inline and inline.group(1).strip():
        return inline.group(1).strip()

    lines = [line.strip() for line in text.split("\n")]
    start = -1
    for index, line in enumerate(lines):
        if FORECAST_HEADER.search(line):
            rest = FORECAST_HEADER.sub("", line).strip()
            rest = re.sub(r"^изменения\s+природных\s+условий\s*", "", rest, flags=re.IGNORECASE).strip()
            if rest:
                return rest
            start = index
            break
    if start < 0:
        return DEFAULT_FORECAST_TEXT

    content: list[str] = []
    for line in lines[start + 1 : start + 20]:
        if any(pattern.search(line) for pattern in FORECAST_STOP):
            break
        if line:
            content.append(line)
    return "\n".join(content).strip() or DEFAULT_FORECAST_TEXT


def pollution_sources(tz_text: str | None) -> str:
    text = str(tz_text or "")
    header = POLLUTION_SOURCES_HEADER.search(text)
    if header is None:
        return ""
    after = text[header.end() :]
    end = len(after)
    for pattern in POLLUTION_SOURCES_END:
        match = pattern.search(after)
        if match and match.start() > 10:
            end = min(end, match.start())
    content = after[:end].strip()
    return content if len(content) >= 10 else ""


def sample_group(title: str, current: str = "none") -> str:
    key = title.casefold()
    for prefix, group in SAMPLE_GROUPS:
        if key.startswith(prefix):
            return group
    return current


def candidate_quantity_lines(order_text: str | None, limit: int = 160) -> list[tuple[str, str, str, str]]:
    """Table-like order lines as ``(name, unit, column_a, column_b)``.

    A line qualifies when it splits (on tabs, else on runs of 2+ spaces) into
    at least three parts and one of its last two columns is numeric.
    """
    found: list[tuple[str, str, str, str]] = []
    for raw in str(order_text or "").splitlines():
        line = raw.replace("\u00a0", " ").strip()
        if not line:
            continue
        splitter = r"\t+" if "\t" in line else r"\s{2,}"
        parts = [part.strip() for part in re.split(splitter, line) if part.strip()]
        if len(parts) < 3:
            continue
        name, unit = parts[0], parts[1]
        if len(name) > 220:
            continue
        last = parts[-1]
        before_last = parts[-2] if len(parts) >= 4 else ""
        if _numeric_or_none(last) is None and _numeric_or_none(before_last) is None:
            continue
        found.append((name, unit, before_last, last))
        if len(found) >= limit:
            break
    return found


def _numeric_or_none(token: str) -> float | None:
    try:
        return parse_number(token)
    except AmbiguousQuantity:
        return None


def service_quantities(order_text: str | None) -> ServiceQuantities:
    """Map order table lines onto price-list rows, taking the rightmost numeric column."""
    by_row: dict[int, float] = {}
    for name, _unit, column_a, column_b in candidate_quantity_lines(order_text):
        quantity = _numeric_or_none(column_b)
        if quantity is None:
            quantity = _numeric_or_none(column_a)
        if quantity is None:
            continue
        for service, pattern in _SERVICE_KEYWORDS:
            if pattern.search(name):
                by_row.setdefault(SERVICE_ROWS[service], quantity)
                break
    return ServiceQuantities(by_row=by_row)


_GROUP_FACTS = {
    "sediment": "has_sediment_sampling",
    "surface_water": "has_surface_water",
    "ground_water": "has_ground_water",
    "air": "has_air_sampling",
}
_BUILDING_ROW = re.compile(r"(здани|помещени)", _FLAGS)


def match_rows_by_facts(rows: list[tuple[str, str]], facts: FactSet) -> list[int]:
    """Work rows implied by the facts alone; ``rows`` holds ``(title, sample_group)`` pairs."""
    keep: list[int] = []
    for index, (title, group) in enumerate(rows):
        group_fact = _GROUP_FACTS.get(group)
        if group_fact and not getattr(facts, group_fact):
            continue
        if PHYSICAL_IMPACTS.search(title) and not facts.has_physical_impacts:
            continue
        if RADON_FLUX.search(title) and not facts.has_radon_flux:
            continue
        if _BUILDING_ROW.search(title) and not facts.has_building_survey:
            continue
        if GAS_GEOCHEMISTRY.search(title) and not facts.has_gas_geochemistry:
            continue
        keep.append(index)
    return keep
