"""chatindex ingest pipeline — export parser, chunker, transactional writer."""

from chatindex.ingest.chunker import TextChunk, TextChunker, chunk_text
from chatindex.ingest.parser import (
    ExportParseError,
    ParsedConversation,
    ParsedExport,
    parse_export,
    parse_export_file,
)
from chatindex.ingest.pipeline import IngestPipeline, IngestResult, compute_file_hash

__all__ = [
    "ExportParseError",
    "IngestPipeline",
    "IngestResult",
    "ParsedConversation",
    "ParsedExport",
    "TextChunk",
    "TextChunker",
    "chunk_text",
    "compute_file_hash",
    "parse_export",
    "parse_export_file",
]
