from statement_ingest.config.settings import Settings
from statement_ingest.preprocessing.pdf_base import BasePdfExtractor
from statement_ingest.preprocessing.pdfplumber_adapter import PdfPlumberAdapter
from statement_ingest.preprocessing.pymupdf_adapter import PyMuPdfAdapter


class PdfExtractorFactory:
    """Creates the PDF extractor named by ``settings.pdf_engine``."""

    ADAPTERS: dict[str, type[BasePdfExtractor]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BasePdfExtractor:
        engine = settings.pdf_engine.strip().lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {sorted(cls.ADAPTERS)}"
            )
        return adapter_cls()
