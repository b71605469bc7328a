from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, Field, field_validator, model_validator

_TRUE_TOKENS = {"true", "да", "1", "yes"}


def coerce_bool(value: Any) -> bool:
    """Lenient truthiness for extractor payloads; unknown tokens read as False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_TOKENS
    return False


class FactSet(BaseModel):
    has_water_sampling: bool = False
    has_sediment_sampling: bool = False
    has_air_sampling: bool = False
    has_physical_impacts: bool = False
    has_building_survey: bool = False
    is_communication_networks_object: bool = False
    has_radon_flux: bool = False
    has_gas_geochemistry: bool = False
    has_surface_water: bool = False
    has_ground_water: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _lenient_bool(cls, value: Any) -> bool:
        return coerce_bool(value)

    @classmethod
    def fact_names(cls) -> list[str]:
        return list(cls.model_fields)

    def merge(self, other: "FactSet") -> "FactSet":
        return FactSet(**{name: getattr(self, name) or getattr(other, name) for name in self.fact_names()})

    @property
    def has_any_water(self) -> bool:
        return self.has_water_sampling or self.has_surface_water or self.has_ground_water


def merge_fact_sets(fact_sets: Iterable[FactSet]) -> FactSet:
    merged = FactSet()
    for fact_set in fact_sets:
        merged = merged.merge(fact_set)
    return merged


class ObjectTypeFlags(BaseModel):
    is_linear_communication: bool = False
    is_road_object: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _lenient_bool(cls, value: Any) -> bool:
        return coerce_bool(value)


class SoilLayer(BaseModel):
    depth_from: float = Field(..., ge=0)
    depth_to: float = Field(..., gt=0)
    sample_count: int = Field(default=0, ge=0)
    platform_numbers: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _ordered_depths(self) -> "SoilLayer":
        if self.depth_to <= self.depth_from:
            raise ValueError(f"layer {self.depth_from}-{self.depth_to} m is empty")
        return self

    @property
    def key(self) -> tuple[float, float]:
        return (round(self.depth_from, 3), round(self.depth_to, 3))


def merge_soil_layers(*layer_lists: Iterable[SoilLayer]) -> list[SoilLayer]:
    """Merge layers by depth range: counts add up, platform numbers are unioned."""
    merged: dict[tuple[float, float], SoilLayer] = {}
    for layers in layer_lists:
        for layer in layers:
            existing = merged.get(layer.key)
            if existing is None:
                merged[layer.key] = layer.model_copy(update={"platform_numbers": sorted(set(layer.platform_numbers))})
                continue
            merged[layer.key] = existing.model_copy(
                update={
                    "sample_count": existing.sample_count + layer.sample_count,
                    "platform_numbers": sorted(set(existing.platform_numbers) | set(layer.platform_numbers)),
                }
            )
    return sorted(merged.values(), key=lambda layer: (layer.depth_from, layer.depth_to))


class LayersData(BaseModel):
    layers: list[SoilLayer] = Field(default_factory=list)
    surface_platform_count: int = Field(default=0, ge=0)
    total_borehole_count: int = Field(default=0, ge=0)

    @property
    def max_depth(self) -> float:
        return max((layer.depth_to for layer in self.layers), default=0.0)

    @property
    def unique_platform_count(self) -> int:
        platforms: set[int] = set()
        for layer in self.layers:
            platforms.update(layer.platform_numbers)
        return len(platforms) or self.surface_platform_count

    def merge(self, other: "LayersData") -> "LayersData":
        return LayersData(
            layers=merge_soil_layers(self.layers, other.layers),
            surface_platform_count=self.surface_platform_count + other.surface_platform_count,
            total_borehole_count=self.total_borehole_count + other.total_borehole_count,
        )


# Price-list rows the work table draws its quantities from.
SERVICE_ROWS = {
    "radiometry_ha": 16,
    "radon_flux_points": 17,
    "soil": 20,
    "soil_toxicity": 21,
    "soil_microbiology": 22,
    "soil_flies": 23,
    "surface_water": 28,
    "sediment": 29,
    "ground_water": 30,
}


class ServiceQuantities(BaseModel):
    """Quantities from the order keyed by price-list row number."""

    by_row: dict[int, float | str] = Field(default_factory=dict)

    @field_validator("by_row", mode="before")
    @classmethod
    def _drop_blank(cls, value: Any) -> dict[int, float | str]:
        cleaned: dict[int, float | str] = {}
        for key, item in dict(value or {}).items():
            try:
                row = int(key)
            except (TypeError, ValueError):
                continue
            if item is None or isinstance(item, bool):
                continue
            if isinstance(item, (int, float)):
                cleaned[row] = float(item)
                continue
            token = str(item).strip()
            if token and token not in {"-", "–"}:
                cleaned[row] = token
        return cleaned

    def raw(self, name: str) -> float | str | None:
        return self.by_row.get(SERVICE_ROWS[name])

    def merge(self, other: "ServiceQuantities") -> "ServiceQuantities":
        """Sum numeric quantities per row; a textual value on the left is kept as-is."""
        merged = dict(other.by_row)
        for row, value in self.by_row.items():
            existing = merged.get(row)
            if isinstance(value, float) and isinstance(existing, float):
                merged[row] = value + existing
            else:
                merged[row] = value
        return ServiceQuantities(by_row=dict(sorted(merged.items())))


class SiteData(BaseModel):
    object_name: str = ""
    address: str = ""
    region_type: str = ""
    site_area: str = ""
    site_description: str = ""
    technical_characteristics: str = ""
    radiometry_area_ha: float | None = None

    @property
    def is_moscow(self) -> bool:
        if self.region_type.strip().upper() == "MOSCOW_CITY":
            return True
        address = " ".join(self.address.lower().split())
        if any(marker in address for marker in ("московская область", "моск. обл", "мо,")):
            return False
        return any(marker in address for marker in ("москва", "г.москва", "г. москва"))


class ProgramInputs(BaseModel):
    """Everything one assembly run reads; built once, never mutated by rules."""

    facts: FactSet = Field(default_factory=FactSet)
    object_type: ObjectTypeFlags = Field(default_factory=ObjectTypeFlags)
    site: SiteData = Field(default_factory=SiteData)
    layers: LayersData | None = None
    quantities: ServiceQuantities = Field(default_factory=ServiceQuantities)
    work_row_keep: list[int] | None = None
    order_text: str = ""
    tz_text: str = ""
    has_cysts: bool | None = None
    forecast_text: str | None = None
    previous_report_text: str | None = None
    pollution_sources_text: str | None = None
    contaminated_sites_text: str | None = None
