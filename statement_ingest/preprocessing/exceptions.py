class PreprocessingError(Exception):
    """Raised when uploaded bytes cannot be prepared for extraction."""


class PdfExtractionError(PreprocessingError):
    """Raised when a PDF adapter cannot read the document."""


class SpreadsheetError(PreprocessingError):
    """Raised when a workbook cannot be read."""
