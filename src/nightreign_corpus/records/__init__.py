"""
Record Package

Parsed (input) and normalized (output) record schemas shared by the
normalizer, the cache and the chunk builders.
"""

from .common import CONTENT_TYPES, ContentChunk, ContentType
from .parsed import ParsedRecord, parse_record
from .normalized import NormalizedExtension, NormalizedRecord, dump_record, load_record

__all__ = [
    "CONTENT_TYPES",
    "ContentChunk",
    "ContentType",
    "ParsedRecord",
    "parse_record",
    "NormalizedExtension",
    "NormalizedRecord",
    "dump_record",
    "load_record",
]
