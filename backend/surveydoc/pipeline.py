from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import time
from typing import Callable

from surveydoc.config import settings
from surveydoc.docx.package import DocxPackage
from surveydoc.docx.styles import normalize_styles
from surveydoc.extraction import heuristics
from surveydoc.extraction.runtime import BedrockFactExtractor
from surveydoc.extraction.service import FactExtractor, OrderSource, collect_order_facts, resolve_object_type
from surveydoc.facts import ProgramInputs, SiteData
from surveydoc.observability import configure_logging, run_scope
from surveydoc.report import AssemblyReport
from surveydoc.rules.cells import apply_boundaries, apply_contaminated_sites, apply_natural_characteristics
from surveydoc.rules.engine import RuleContext, SectionRules, apply_section
from surveydoc.rules.layers import apply_methods
from surveydoc.rules.sections import SECTION_41, SECTION_43, SECTION_44, SECTION_45, SECTION_61, SECTION_62, SECTION_71
from surveydoc.rules.table42 import apply_work_table

logger = logging.getLogger("surveydoc.assembly")

configure_logging(settings.log_level)

SectionStep = Callable[[str, RuleContext, AssemblyReport], str]


@dataclass(frozen=True)
class AssemblyResult:
    content: bytes
    report: AssemblyReport


@lru_cache(maxsize=1)
def _cached_bedrock_extractor() -> BedrockFactExtractor:
    return BedrockFactExtractor(settings=settings)


def get_fact_extractor() -> FactExtractor | None:
    """The configured model extractor, or None when only heuristics are used."""
    if not settings.uses_model_extractor:
        return None
    return _cached_bedrock_extractor()


def _rules(section: SectionRules) -> SectionStep:
    def _step(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
        return apply_section(doc, section, ctx, report)

    return _step


def _section_steps(extractor: FactExtractor | None) -> list[tuple[str, SectionStep]]:
    def work_table(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
        return apply_work_table(doc, ctx, report, extractor=extractor)

    return [
        ("4.1", _rules(SECTION_41)),
        ("4.2", work_table),
        ("4.3", _rules(SECTION_43)),
        ("4.4", _rules(SECTION_44)),
        ("4.5", _rules(SECTION_45)),
        ("4.7", apply_methods),
        ("6.1", _rules(SECTION_61)),
        ("6.2", _rules(SECTION_62)),
        ("7.1", _rules(SECTION_71)),
        ("8.1", apply_natural_characteristics),
        ("8.2", apply_contaminated_sites),
        ("8.3/8.4", apply_boundaries),
    ]


def assemble_document_xml(
    xml: str,
    inputs: ProgramInputs,
    report: AssemblyReport,
    *,
    extractor: FactExtractor | None = None,
) -> str:
    """Run every section over the main document part, then normalise styles."""
    ctx = RuleContext(inputs)
    doc = xml
    for name, step in _section_steps(extractor):
        started = time.perf_counter()
        doc = step(doc, ctx, report)
        logger.debug(
            "section_completed",
            extra={
                "event": "section_completed",
                "section": name,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
    return normalize_styles(doc)


def assemble_program(
    template: bytes,
    inputs: ProgramInputs,
    *,
    run_id: str | None = None,
    extractor: FactExtractor | None = None,
) -> AssemblyResult:
    """Fill a program template and return the new docx bytes with the run's report.

    Only an unreadable template raises (``TemplateFormatError``); every other
    problem is recorded on the report and leaves the region as authored.
    """
    started = time.perf_counter()
    with run_scope(run_id) as resolved_run_id:
        report = AssemblyReport(run_id=resolved_run_id)
        package = DocxPackage.from_bytes(template, settings.document_part_name)
        logger.info(
            "assembly_started",
            extra={"event": "assembly_started", "template_bytes": len(template), "entries": len(package.entry_names())},
        )
        package.document_xml = assemble_document_xml(package.document_xml, inputs, report, extractor=extractor)
        content = package.to_bytes()
        logger.info(
            "assembly_completed",
            extra={
                "event": "assembly_completed",
                "sections": len(report.sections_applied),
                "skipped": len(report.skipped),
                "fallbacks": report.fallbacks,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return AssemblyResult(content=content, report=report)


def build_program_inputs(
    order_text: str,
    *,
    site: SiteData | None = None,
    tz_text: str = "",
    supplementary_orders: list[str] | None = None,
    previous_report_text: str | None = None,
    contaminated_sites_text: str | None = None,
    extractor: FactExtractor | None = None,
    report: AssemblyReport | None = None,
) -> ProgramInputs:
    """Resolve every extracted fact up front so no section runs on partial data."""
    site = site or SiteData()
    primary = OrderSource(text=order_text, object_name=site.object_name, label="order")
    supplementary = [
        OrderSource(text=text, object_name=site.object_name, label=f"order_{position}")
        for position, text in enumerate(supplementary_orders or [], start=1)
        if text.strip()
    ]
    merged = collect_order_facts(primary, supplementary, extractor=extractor, report=report)
    object_type = resolve_object_type(site.object_name, extractor=extractor, report=report)
    all_orders = "\n".join([order_text, *(source.text for source in supplementary)])

    return ProgramInputs(
        facts=merged.facts,
        object_type=object_type,
        site=site,
        layers=merged.layers,
        quantities=merged.quantities,
        order_text=all_orders,
        tz_text=tz_text,
        has_cysts=heuristics.mentions_cysts(all_orders),
        forecast_text=heuristics.forecast_requirements(tz_text),
        previous_report_text=previous_report_text,
        pollution_sources_text=heuristics.pollution_sources(tz_text) or None,
        contaminated_sites_text=contaminated_sites_text,
    )
