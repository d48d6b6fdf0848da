import io

import pdfplumber
from pdfplumber.page import Page

from statement_ingest.preprocessing.exceptions import PdfExtractionError
from statement_ingest.preprocessing.pdf_base import BasePdfExtractor


class PdfPlumberAdapter(BasePdfExtractor):
    """Reads statement text with pdfplumber, appending detected tables per page."""

    def extract(self, pdf_bytes: bytes) -> str:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                pages = [self._page_text(page) for page in pdf.pages]
        except Exception as exc:
            raise PdfExtractionError(f"pdfplumber extraction failed: {exc}") from exc
        return self.join_pages(pages)

    @staticmethod
    def _page_text(page: Page) -> str:
        text = page.extract_text() or ""
        tables = page.extract_tables() or []
        rendered = [
            "\n".join(" | ".join(cell or "" for cell in row) for row in table)
            for table in tables
            if table
        ]
        if rendered:
            text = text + "\n\n[Tables]\n" + "\n\n".join(rendered)
        return text
