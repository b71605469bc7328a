from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from surveydoc.errors import AssemblyError

logger = logging.getLogger("surveydoc.assembly")


class SkippedRegion(BaseModel):
    kind: str
    section: str
    target: str = ""
    detail: str = ""


class AssemblyReport(BaseModel):
    run_id: str = "-"
    sections_applied: list[str] = Field(default_factory=list)
    skipped: list[SkippedRegion] = Field(default_factory=list)
    fallbacks: list[str] = Field(default_factory=list)

    def record(self, error: AssemblyError, *, section: str, target: str = "") -> None:
        resolved_target = target or str(getattr(error, "target", ""))
        entry = SkippedRegion(kind=error.kind, section=section, target=resolved_target, detail=str(error))
        self.skipped.append(entry)
        logger.warning(
            "region_skipped",
            extra={
                "event": "region_skipped",
                "kind": entry.kind,
                "section": section,
                "target": resolved_target,
                "detail": entry.detail,
            },
        )

    def record_fallback(self, name: str, reason: str = "") -> None:
        if name not in self.fallbacks:
            self.fallbacks.append(name)
        logger.warning(
            "heuristic_fallback",
            extra={"event": "heuristic_fallback", "fallback": name, "reason": reason},
        )

    def mark_applied(self, section: str) -> None:
        self.sections_applied.append(section)

    def skipped_targets(self, section: str | None = None) -> list[str]:
        return [item.target for item in self.skipped if section is None or item.section == section]
