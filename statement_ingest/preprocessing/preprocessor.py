import base64

from statement_ingest.logging.logger import Log
from statement_ingest.preprocessing.exceptions import PreprocessingError
from statement_ingest.preprocessing.file_types import IMAGE_MEDIA_TYPES, TEXT_FILE_TYPES
from statement_ingest.preprocessing.models import PreparedFile
from statement_ingest.preprocessing.pdf_base import BasePdfExtractor
from statement_ingest.preprocessing.spreadsheet import parse_csv_rows, workbook_to_text


class FilePreprocessor:
    """Turns raw upload bytes into the representation the oracle accepts."""

    def __init__(self, pdf_extractor: BasePdfExtractor) -> None:
        self._pdf_extractor = pdf_extractor

    def prepare(self, raw_bytes: bytes, file_type: str) -> PreparedFile:
        """Prepare bytes of the given file type.

        Raises:
            PreprocessingError: for unknown file types or unreadable content.
        """
        if not raw_bytes:
            raise PreprocessingError("File is empty")
        if file_type == "pdf":
            return self._prepare_pdf(raw_bytes)
        if file_type in IMAGE_MEDIA_TYPES:
            return PreparedFile(
                content_type="image",
                media_type=IMAGE_MEDIA_TYPES[file_type],
                base64_data=_b64(raw_bytes),
            )
        if file_type == "xlsx":
            return PreparedFile(content_type="text", text=workbook_to_text(raw_bytes))
        if file_type == "csv":
            text = _decode(raw_bytes)
            return PreparedFile(content_type="text", text=text, rows=parse_csv_rows(text))
        if file_type in TEXT_FILE_TYPES:
            return PreparedFile(content_type="text", text=_decode(raw_bytes))
        raise PreprocessingError(f"Unsupported file type '{file_type}'")

    def _prepare_pdf(self, raw_bytes: bytes) -> PreparedFile:
        text = self._pdf_extractor.extract(raw_bytes)
        if text.strip():
            Log.debug(f"PDF text layer: {len(text)} chars")
            return PreparedFile(content_type="text", text=text)
        Log.info("PDF has no text layer, sending as document")
        return PreparedFile(
            content_type="document",
            media_type="application/pdf",
            base64_data=_b64(raw_bytes),
        )


def _b64(raw_bytes: bytes) -> str:
    return base64.b64encode(raw_bytes).decode("ascii")


def _decode(raw_bytes: bytes) -> str:
    return raw_bytes.decode("utf-8-sig", errors="replace")
