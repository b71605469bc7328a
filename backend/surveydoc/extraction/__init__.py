from surveydoc.extraction.service import (
    FactExtractor,
    OrderFacts,
    OrderSource,
    collect_order_facts,
    match_work_rows,
    resolve_layers,
    resolve_object_type,
    resolve_order_facts,
    resolve_service_quantities,
)
from surveydoc.extraction.sources import SourceText, read_source_text

__all__ = [
    "FactExtractor",
    "OrderFacts",
    "OrderSource",
    "SourceText",
    "collect_order_facts",
    "match_work_rows",
    "read_source_text",
    "resolve_layers",
    "resolve_object_type",
    "resolve_order_facts",
    "resolve_service_quantities",
]
