"""Document assembly: TOC extraction, heading shifting and metadata derivation."""

from .assembler import DocumentAssembler
from .headings import shift_headings
from .metadata import MetadataExtractor, compile_metadata_pattern
from .stylesheets import MappingStylesheetResolver, PrefixStylesheetResolver, StylesheetResolver
from .toc import extract_toc

__all__ = [
    "DocumentAssembler",
    "MappingStylesheetResolver",
    "MetadataExtractor",
    "PrefixStylesheetResolver",
    "StylesheetResolver",
    "compile_metadata_pattern",
    "extract_toc",
    "shift_headings",
]
