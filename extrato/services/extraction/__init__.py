"""Text extraction from uploaded statements."""

from extrato.services.extraction.text_extractor import (
    ExtractedDocument,
    ExtractionError,
    UnsupportedDocumentError,
    assemble_lines,
    decode_text,
    extract_document,
    extract_pdf_text,
    read_delimited_rows,
)

__all__ = [
    "ExtractedDocument",
    "ExtractionError",
    "UnsupportedDocumentError",
    "assemble_lines",
    "decode_text",
    "extract_document",
    "extract_pdf_text",
    "read_delimited_rows",
]
