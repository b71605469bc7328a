from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import contextvars
from dataclasses import dataclass, field
import logging
import math
from typing import Any, Protocol

from pydantic import ValidationError

from surveydoc.config import settings
from surveydoc.errors import ExtractorRuntimeError, MalformedExtractorOutput
from surveydoc.extraction import heuristics
from surveydoc.facts import (
    FactSet,
    LayersData,
    ObjectTypeFlags,
    ServiceQuantities,
    coerce_bool,
    merge_fact_sets,
)
from surveydoc.report import AssemblyReport

logger = logging.getLogger("surveydoc.extractor")

_RECOVERABLE = (ExtractorRuntimeError, MalformedExtractorOutput, ValidationError)


class FactExtractor(Protocol):
    def extract_order_facts(self, order_text: str, *, object_name: str = "") -> dict[str, object]:
        ...

    def classify_object(self, object_name: str) -> dict[str, object]:
        ...

    def extract_layers(self, order_text: str) -> dict[str, object]:
        ...

    def match_work_rows(self, order_text: str, work_rows: list[str]) -> dict[str, object]:
        ...

    def extract_service_quantities(self, order_text: str, candidate_lines: list[str]) -> dict[str, object]:
        ...


@dataclass(frozen=True)
class OrderSource:
    text: str
    object_name: str = ""
    label: str = "order"


@dataclass
class OrderFacts:
    facts: FactSet = field(default_factory=FactSet)
    layers: LayersData | None = None
    quantities: ServiceQuantities = field(default_factory=ServiceQuantities)

    def merge(self, other: "OrderFacts") -> "OrderFacts":
        if self.layers is None:
            layers = other.layers
        elif other.layers is None:
            layers = self.layers
        else:
            layers = self.layers.merge(other.layers)
        return OrderFacts(
            facts=merge_fact_sets([self.facts, other.facts]),
            layers=layers,
            quantities=self.quantities.merge(other.quantities),
        )


def _object_payload(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedExtractorOutput(f"extractor payload must be an object, got {type(raw).__name__}")
    return raw


def _fallback(report: AssemblyReport | None, name: str, exc: Exception | None) -> None:
    reason = str(exc) if exc is not None else "no extractor configured"
    if report is not None:
        report.record_fallback(name, reason)
    else:
        logger.warning("heuristic_fallback", extra={"event": "heuristic_fallback", "fallback": name, "reason": reason})


def resolve_order_facts(
    order_text: str,
    *,
    object_name: str = "",
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> FactSet:
    """Facts for one order.

    A fact the model reports is OR-ed with the keyword heuristic; a fact the
    model omits, or every fact when the model fails, comes from the heuristic
    alone.
    """
    heuristic = heuristics.detect_facts(order_text, object_name)
    if extractor is None:
        return heuristic

    try:
        raw = _object_payload(extractor.extract_order_facts(order_text, object_name=object_name))
    except _RECOVERABLE as exc:
        _fallback(report, "order_facts", exc)
        return heuristic

    resolved: dict[str, bool] = {}
    missing: list[str] = []
    for name in FactSet.fact_names():
        fallback_value = getattr(heuristic, name)
        if name not in raw:
            missing.append(name)
            resolved[name] = fallback_value
            continue
        resolved[name] = coerce_bool(raw[name]) or fallback_value
    if missing:
        _fallback(report, "order_facts:partial", MalformedExtractorOutput(f"missing facts: {', '.join(missing)}"))
    return FactSet(**resolved)


def resolve_object_type(
    object_name: str,
    *,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> ObjectTypeFlags:
    deterministic = heuristics.detect_object_type(object_name)
    if deterministic.is_linear_communication or deterministic.is_road_object or extractor is None:
        return deterministic
    try:
        return ObjectTypeFlags.model_validate(extractor.classify_object(object_name))
    except _RECOVERABLE as exc:
        _fallback(report, "object_type", exc)
        return deterministic


def resolve_layers(
    order_text: str,
    *,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> LayersData | None:
    if extractor is not None:
        try:
            layers = LayersData.model_validate(extractor.extract_layers(order_text))
            if layers.layers:
                return layers
            _fallback(report, "layers", MalformedExtractorOutput("extractor returned no layers"))
        except _RECOVERABLE as exc:
            _fallback(report, "layers", exc)
    return heuristics.parse_layers(order_text)


def resolve_service_quantities(
    order_text: str,
    *,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> ServiceQuantities:
    if extractor is not None:
        lines = [" | ".join(parts) for parts in heuristics.candidate_quantity_lines(order_text)]
        try:
            return ServiceQuantities.model_validate(extractor.extract_service_quantities(order_text, lines))
        except _RECOVERABLE as exc:
            _fallback(report, "service_quantities", exc)
    return heuristics.service_quantities(order_text)


def bounded_indices(values: object, limit: int) -> list[int]:
    """Deduplicated, non-negative indices below ``limit``, in first-seen order."""
    if not isinstance(values, list):
        raise MalformedExtractorOutput("row indices must be a list")
    seen: set[int] = set()
    result: list[int] = []
    for value in values:
        try:
            number = float(str(value))
        except (TypeError, ValueError):
            continue
        if not math.isfinite(number):
            raise MalformedExtractorOutput(f"row index {value!r} is not a finite number")
        index = int(number)
        if index < 0 or index >= limit or index in seen:
            continue
        seen.add(index)
        result.append(index)
    return result


def match_work_rows(
    order_text: str,
    rows: list[tuple[str, str]],
    facts: FactSet,
    *,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> list[int]:
    """Indices into ``rows`` (``(title, sample_group)`` pairs) of the work rows to keep."""
    if not rows:
        return []
    if extractor is not None:
        try:
            raw = _object_payload(extractor.match_work_rows(order_text, [title for title, _ in rows]))
            return bounded_indices(raw.get("keep_work_row_indexes"), len(rows))
        except _RECOVERABLE as exc:
            _fallback(report, "work_rows", exc)
    return heuristics.match_rows_by_facts(rows, facts)


def _extract_one(
    source: OrderSource,
    extractor: FactExtractor | None,
    report: AssemblyReport | None,
) -> OrderFacts:
    logger.info(
        "order_extraction_started",
        extra={"event": "order_extraction_started", "source": source.label, "order_chars": len(source.text)},
    )
    return OrderFacts(
        facts=resolve_order_facts(source.text, object_name=source.object_name, extractor=extractor, report=report),
        layers=resolve_layers(source.text, extractor=extractor, report=report),
        quantities=resolve_service_quantities(source.text, extractor=extractor, report=report),
    )


def collect_order_facts(
    primary: OrderSource,
    supplementary: list[OrderSource] | None = None,
    *,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
    max_workers: int | None = None,
) -> OrderFacts:
    """Extract every order concurrently and merge the results.

    Nothing is returned until all sources have resolved, so rules only ever
    see the fully merged facts. Numeric service quantities for the same row are
    summed across orders, as are soil layer sample counts.
    """
    sources = [primary, *(supplementary or [])]
    workers = max(1, min(max_workers or settings.extraction_max_workers, len(sources)))

    def run_one(source: OrderSource) -> OrderFacts:
        return _extract_one(source, extractor, report)

    if workers <= 1:
        results = [run_one(source) for source in sources]
    else:
        # Each task runs in a copy of the caller's context so the run id follows it into the worker.
        contexts = [contextvars.copy_context() for _ in sources]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda pair: pair[0].run(run_one, pair[1]), zip(contexts, sources)))

    merged = results[0]
    for result in results[1:]:
        merged = merged.merge(result)
    logger.info(
        "order_facts_merged",
        extra={
            "event": "order_facts_merged",
            "sources": len(sources),
            "facts": merged.facts.model_dump(),
            "layers": len(merged.layers.layers) if merged.layers else 0,
        },
    )
    return merged
