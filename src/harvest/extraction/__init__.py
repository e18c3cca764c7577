"""
Extraction Package.

Parses markup and turns container elements into structured records.
"""

from .markup import MarkupDocument, MarkupElement, parse_document
from .field_extractor import FieldExtractor, normalize_url

__all__ = [
    "MarkupDocument",
    "MarkupElement",
    "parse_document",
    "FieldExtractor",
    "normalize_url",
]
