from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
import logging
from typing import Callable

from surveydoc.docx.locator import Span

logger = logging.getLogger("surveydoc.edits")

Transform = Callable[[str], str]


@dataclass
class Patch:
    span: Span
    transforms: list[Transform] = field(default_factory=list)

    def render(self, original: str) -> str:
        text = original
        for transform in self.transforms:
            text = transform(text)
        return text


class EditConflict(ValueError):
    """Two patches overlap without covering the exact same span."""


@dataclass
class EditScript:
    """Ordered, non-overlapping span patches applied in one pass.

    Patches on the exact same span compose in insertion order, so "replace
    then clean" or "remove then clean" on one paragraph behave like the
    sequential calls they stand for.
    """

    patches: list[Patch] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.patches)

    def add(self, span: Span, transform: Transform) -> None:
        starts = [patch.span.start for patch in self.patches]
        position = bisect_left(starts, span.start)

        for neighbour in self.patches[max(0, position - 1) : position + 1]:
            if neighbour.span == span:
                neighbour.transforms.append(transform)
                return
            if neighbour.span.overlaps(span):
                raise EditConflict(
                    f"patch {span.start}:{span.end} overlaps {neighbour.span.start}:{neighbour.span.end}"
                )
        self.patches.insert(position, Patch(span=span, transforms=[transform]))

    def replace(self, span: Span, text: str) -> None:
        self.add(span, lambda _original: text)

    def delete(self, span: Span) -> None:
        self.replace(span, "")

    def apply(self, doc: str) -> str:
        if not self.patches:
            return doc
        pieces: list[str] = []
        cursor = 0
        for patch in self.patches:
            pieces.append(doc[cursor : patch.span.start])
            pieces.append(patch.render(doc[patch.span.start : patch.span.end]))
            cursor = patch.span.end
        pieces.append(doc[cursor:])
        logger.debug("edit_script_applied", extra={"event": "edit_script_applied", "patches": len(self.patches)})
        return "".join(pieces)
