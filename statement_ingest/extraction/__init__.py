from statement_ingest.extraction.dispatcher import DispatchResult, ExtractionDispatcher
from statement_ingest.extraction.factory import OracleBinding, OracleClientFactory
from statement_ingest.extraction.models import (
    DetectedAccountInfo,
    ExtractedBalance,
    ExtractedPosition,
    ExtractedTransaction,
    ExtractionResult,
)
from statement_ingest.extraction.validator import validate_and_build

__all__ = [
    "DetectedAccountInfo",
    "DispatchResult",
    "ExtractedBalance",
    "ExtractedPosition",
    "ExtractedTransaction",
    "ExtractionDispatcher",
    "ExtractionResult",
    "OracleBinding",
    "OracleClientFactory",
    "validate_and_build",
]
