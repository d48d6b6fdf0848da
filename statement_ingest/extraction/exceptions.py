class ExtractionError(Exception):
    """Raised when the extraction oracle cannot produce a usable result."""


class ExtractionValidationError(ExtractionError):
    """Raised when the oracle response fails structural validation."""


class ExtractionNetworkError(ExtractionError):
    """Raised when the oracle call fails due to network or provider issues."""
