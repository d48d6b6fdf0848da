from abc import ABC, abstractmethod


class BasePdfExtractor(ABC):
    """Contract for PDF text extraction adapters."""

    @abstractmethod
    def extract(self, pdf_bytes: bytes) -> str:
        """Extract statement text from PDF bytes.

        Pages are separated by ``--- Page N ---`` markers so the oracle can
        cite where figures came from. Returns an empty string for scanned
        PDFs without a text layer.

        Raises:
            PdfExtractionError: if the document cannot be opened or read.
        """

    @staticmethod
    def join_pages(pages: list[str]) -> str:
        parts = [
            f"--- Page {number} ---\n{text.strip()}"
            for number, text in enumerate(pages, start=1)
            if text and text.strip()
        ]
        return "\n\n".join(parts)
