import base64
from unittest.mock import MagicMock

import pytest

from statement_ingest.preprocessing.exceptions import PreprocessingError, SpreadsheetError
from statement_ingest.preprocessing.file_types import file_type_for_mime
from statement_ingest.preprocessing.pdfplumber_adapter import PdfPlumberAdapter
from statement_ingest.preprocessing.preprocessor import FilePreprocessor
from statement_ingest.preprocessing.spreadsheet import parse_csv_rows, workbook_to_text


class TestFileTypeForMime:
    @pytest.mark.parametrize(
        ("mime_type", "expected"),
        [
            ("application/pdf", "pdf"),
            ("text/csv", "csv"),
            ("application/vnd.ms-excel", "csv"),
            ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
            ("image/jpeg", "jpg"),
            ("application/x-ofx", "ofx"),
            ("Text/CSV; charset=utf-8", "csv"),
        ],
    )
    def test_known_types(self, mime_type: str, expected: str) -> None:
        assert file_type_for_mime(mime_type) == expected

    def test_unknown_type(self) -> None:
        assert file_type_for_mime("application/zip") is None


class TestFilePreprocessor:
    def test_pdf_with_text_layer_becomes_text(self, sample_pdf_bytes: bytes) -> None:
        prepared = FilePreprocessor(PdfPlumberAdapter()).prepare(sample_pdf_bytes, "pdf")
        assert prepared.content_type == "text"
        assert "Account ending 1234" in prepared.text
        assert not prepared.is_binary

    def test_scanned_pdf_becomes_document(self, empty_pdf_bytes: bytes) -> None:
        prepared = FilePreprocessor(PdfPlumberAdapter()).prepare(empty_pdf_bytes, "pdf")
        assert prepared.content_type == "document"
        assert prepared.media_type == "application/pdf"
        assert base64.b64decode(prepared.base64_data) == empty_pdf_bytes
        assert prepared.is_binary

    def test_image_is_base64_encoded(self) -> None:
        raw = b"\x89PNG\r\n\x1a\nfake"
        prepared = FilePreprocessor(MagicMock()).prepare(raw, "png")
        assert prepared.content_type == "image"
        assert prepared.media_type == "image/png"
        assert base64.b64decode(prepared.base64_data) == raw

    def test_csv_keeps_text_and_rows(self, sample_csv_bytes: bytes) -> None:
        prepared = FilePreprocessor(MagicMock()).prepare(sample_csv_bytes, "csv")
        assert prepared.content_type == "text"
        assert prepared.text.startswith("Date,Description,Amount")
        assert prepared.rows == [
            {"Date": "2024-01-05", "Description": "Dividend VTI", "Amount": "12.50"},
            {"Date": "2024-01-09", "Description": "Buy AAPL", "Amount": "-1850.00"},
        ]

    def test_csv_strips_byte_order_mark(self) -> None:
        prepared = FilePreprocessor(MagicMock()).prepare(b"\xef\xbb\xbfDate,Amount\n2024-01-01,5\n", "csv")
        assert prepared.rows == [{"Date": "2024-01-01", "Amount": "5"}]

    def test_xlsx_rendered_per_sheet(self, sample_xlsx_bytes: bytes) -> None:
        prepared = FilePreprocessor(MagicMock()).prepare(sample_xlsx_bytes, "xlsx")
        assert prepared.content_type == "text"
        assert "=== Sheet: Activity ===" in prepared.text
        assert "=== Sheet: Holdings ===" in prepared.text
        assert "2024-01-09,Buy AAPL,-1850" in prepared.text

    @pytest.mark.parametrize("file_type", ["txt", "ofx", "qfx", "json"])
    def test_text_formats_decoded(self, file_type: str) -> None:
        prepared = FilePreprocessor(MagicMock()).prepare(b"<OFX>statement</OFX>", file_type)
        assert prepared.content_type == "text"
        assert prepared.text == "<OFX>statement</OFX>"

    def test_pdf_uses_injected_extractor(self) -> None:
        extractor = MagicMock()
        extractor.extract.return_value = "--- Page 1 ---\nBalance 100"
        prepared = FilePreprocessor(extractor).prepare(b"%PDF", "pdf")
        extractor.extract.assert_called_once_with(b"%PDF")
        assert prepared.text == "--- Page 1 ---\nBalance 100"

    def test_empty_bytes_raise(self) -> None:
        with pytest.raises(PreprocessingError, match="empty"):
            FilePreprocessor(MagicMock()).prepare(b"", "csv")

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(PreprocessingError, match="Unsupported file type"):
            FilePreprocessor(MagicMock()).prepare(b"data", "zip")


class TestSpreadsheet:
    def test_invalid_workbook_raises(self) -> None:
        with pytest.raises(SpreadsheetError, match="Failed to open workbook"):
            workbook_to_text(b"not a workbook")

    def test_blank_rows_skipped(self, sample_xlsx_bytes: bytes) -> None:
        text = workbook_to_text(sample_xlsx_bytes)
        assert ",,\n" not in text

    def test_parse_csv_rows_empty_text(self) -> None:
        assert parse_csv_rows("") == []

    def test_parse_csv_rows_header_only(self) -> None:
        assert parse_csv_rows("Date,Amount\n") == []
