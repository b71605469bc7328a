"""Error taxonomy for document assembly.

Every error except ``TemplateFormatError`` is recovered where it is detected:
the affected region keeps its template content and the failure is recorded on
the run's ``AssemblyReport``.
"""

from __future__ import annotations


class AssemblyError(Exception):
    """Base class for assembly errors."""

    kind = "assembly_error"


class TemplateFormatError(AssemblyError):
    """The template is not a readable docx container."""

    kind = "template_format"


class RegionNotFound(AssemblyError):
    """A paragraph id, row id or anchor text is absent from the document."""

    kind = "region_not_found"

    def __init__(self, target: str, detail: str = "") -> None:
        self.target = target
        super().__init__(detail or f"region '{target}' not found")


class MalformedExtractorOutput(AssemblyError):
    """The extractor payload could not be parsed or validated."""

    kind = "malformed_extractor_output"


class ExtractorRuntimeError(AssemblyError):
    """Model invocation failed or returned no usable output."""

    kind = "extractor_runtime"


class AmbiguousQuantity(AssemblyError):
    """A numeric token could not be parsed."""

    kind = "ambiguous_quantity"


class TableStructureMismatch(AssemblyError):
    """A table row does not have the expected column shape."""

    kind = "table_structure_mismatch"
