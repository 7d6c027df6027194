"""
Tests for document extraction

Test strategy:
1. Line assembly from positioned words (no real PDF needed)
2. Delimited exports through pandas
3. extract_document routing for text, CSV and unreadable binaries
"""

import pytest

from extrato.services.extraction import (
    ExtractionError,
    UnsupportedDocumentError,
    extract_document,
)
from extrato.services.extraction.text_extractor import (
    assemble_lines,
    decode_text,
    read_delimited_rows,
)


CSV_EXPORT = "Data;Descrição;Valor\n15/03/2024;PIX RECEBIDO João;500,00\n16/03/2024;Mercado Extra;-120,50\n"


class TestAssembleLines:
    """Tests for assemble_lines."""

    def test_same_row_joined(self):
        """Test that words at the same height share a line."""
        words = [
            {"text": "05", "top": 100.0},
            {"text": "JAN", "top": 100.4},
            {"text": "Uber", "top": 101.0},
        ]
        assert assemble_lines(words) == "05 JAN Uber"

    def test_vertical_jump_breaks_line(self):
        """Test that a jump above the threshold starts a new line."""
        words = [
            {"text": "05", "top": 100.0},
            {"text": "JAN", "top": 100.0},
            {"text": "06", "top": 120.0},
            {"text": "JAN", "top": 120.0},
        ]
        lines = [line.strip() for line in assemble_lines(words).split("\n")]
        assert lines == ["05 JAN", "06 JAN"]

    def test_custom_threshold(self):
        """Test that a larger threshold keeps nearby rows together."""
        words = [{"text": "a", "top": 0.0}, {"text": "b", "top": 8.0}]
        assert "\n" in assemble_lines(words, threshold=5.0)
        assert "\n" not in assemble_lines(words, threshold=10.0)


class TestDelimitedRows:
    """Tests for read_delimited_rows and decode_text."""

    def test_semicolon_export(self):
        """Test a semicolon-separated export with Brazilian amounts."""
        rows = read_delimited_rows(CSV_EXPORT)
        assert len(rows) == 2
        assert rows[0]["data"] == "15/03/2024"
        assert rows[0]["descrição"] == "PIX RECEBIDO João"
        assert rows[1]["valor"] == "-120,50"

    def test_empty_text(self):
        """Test that blank input yields no rows."""
        assert read_delimited_rows("   ") == []

    def test_latin1_bytes(self):
        """Test that a Latin-1 export is decoded."""
        assert decode_text("Descrição".encode("cp1252")) == "Descrição"


class TestExtractDocument:
    """Tests for extract_document."""

    def test_pasted_text(self):
        """Test that pasted text is returned as text."""
        document = extract_document("05 JAN Uber R$ 10,00")
        assert document.kind == "text"
        assert document.text == "05 JAN Uber R$ 10,00"

    def test_csv_bytes(self):
        """Test that a .csv upload is read into rows."""
        document = extract_document(CSV_EXPORT.encode("utf-8"), filename="extrato.csv")
        assert document.kind == "rows"
        assert document.size == 2
        assert document.filename == "extrato.csv"

    def test_csv_by_mime_type(self):
        """Test that the text/csv content type selects row reading."""
        document = extract_document(CSV_EXPORT.encode("utf-8"), mime_type="text/csv")
        assert document.kind == "rows"

    def test_plain_text_bytes(self):
        """Test that undeclared text bytes are decoded as text."""
        document = extract_document("Nubank\n05 JAN Uber R$ 10,00".encode("utf-8"), filename="fatura.txt")
        assert document.kind == "text"
        assert "Uber" in document.text

    def test_binary_rejected(self):
        """Test that a binary we cannot read is rejected."""
        with pytest.raises(UnsupportedDocumentError):
            extract_document(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR", filename="foto.png")

    def test_broken_pdf(self):
        """Test that a truncated PDF raises ExtractionError."""
        with pytest.raises(ExtractionError):
            extract_document(b"%PDF-1.7 truncated", filename="fatura.pdf")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
