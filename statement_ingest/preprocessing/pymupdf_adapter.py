import pymupdf

from statement_ingest.preprocessing.exceptions import PdfExtractionError
from statement_ingest.preprocessing.pdf_base import BasePdfExtractor


class PyMuPdfAdapter(BasePdfExtractor):
    """Reads statement text with PyMuPDF in reading order."""

    def extract(self, pdf_bytes: bytes) -> str:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text("text", sort=True) for page in doc]
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf extraction failed: {exc}") from exc
        return self.join_pages(pages)
