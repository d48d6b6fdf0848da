import time
from collections.abc import Callable
from pathlib import Path

from statement_ingest.config.settings import Settings
from statement_ingest.database.repositories.account_repository import AccountRepository
from statement_ingest.database.repositories.entity_repository import EntityRepository
from statement_ingest.database.repositories.extraction_failure_repository import (
    ExtractionFailureRepository,
)
from statement_ingest.database.repositories.ledger_repository import LedgerRepository
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.dispatcher import ExtractionDispatcher
from statement_ingest.ledger.data_writer import DataWriter
from statement_ingest.logging.logger import Log
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import EntityMatcher
from statement_ingest.pipeline.exceptions import ProcessingTimeoutError
from statement_ingest.pipeline.pipeline import PipelineContext, PipelineStep, ProcessingSummary
from statement_ingest.pipeline.steps import (
    BeginProcessingStep,
    ExtractStep,
    LinkAccountStep,
    LoadFileStep,
    MarkFailedStep,
    PreprocessStep,
    ResolveEntityStep,
    SaveExtractionStep,
    WriteDataStep,
)
from statement_ingest.preprocessing.pdf_factory import PdfExtractorFactory
from statement_ingest.preprocessing.preprocessor import FilePreprocessor
from statement_ingest.storage.file_storage import FileStorage


class Processor:
    """Runs the processing steps for one upload, strictly in order.

    Pipeline: claim -> load -> preprocess -> extract -> entity -> account ->
    write -> save. The deadline is checked between steps. Once the upload is
    claimed, any failure runs ``failed_step`` before the error propagates.
    """

    def __init__(
        self,
        steps: list[PipelineStep],
        failed_step: PipelineStep,
        timeout_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._steps = steps
        self._failed_step = failed_step
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    def process(self, user_id: str, upload_id: str, preset: str | None = None) -> ProcessingSummary:
        context = PipelineContext(user_id=user_id, upload_id=upload_id, preset=preset)
        deadline = self._clock() + self._timeout_seconds
        try:
            for step in self._steps:
                if self._clock() > deadline:
                    raise ProcessingTimeoutError(
                        f"Processing upload {upload_id} exceeded {self._timeout_seconds:g}s "
                        f"before {type(step).__name__}"
                    )
                context = step.run(context)
        except Exception as exc:
            if context.claimed:
                context.error_message = str(exc) or type(exc).__name__
                self._run_failed_step(context)
            raise
        return context.summary()

    def _run_failed_step(self, context: PipelineContext) -> None:
        try:
            self._failed_step.run(context)
        except Exception as exc:
            Log.error(f"Failed to record failure for upload {context.upload_id}: {exc}")


def build_processor(
    settings: Settings,
    *,
    storage: FileStorage | None = None,
    dispatcher: ExtractionDispatcher | None = None,
) -> Processor:
    """Build a Processor wired to the database repositories."""
    upload_repo = UploadRepository()
    llm_settings_repo = LlmSettingsRepository(settings.extraction_mode)
    storage = storage or FileStorage(Path(settings.files_root))
    dispatcher = dispatcher or ExtractionDispatcher(settings)
    preprocessor = FilePreprocessor(PdfExtractorFactory.create(settings))
    return Processor(
        steps=[
            BeginProcessingStep(upload_repo, llm_settings_repo),
            LoadFileStep(storage),
            PreprocessStep(preprocessor),
            ExtractStep(dispatcher),
            ResolveEntityStep(EntityMatcher(EntityRepository())),
            LinkAccountStep(AccountMatcher(AccountRepository())),
            WriteDataStep(DataWriter(LedgerRepository())),
            SaveExtractionStep(upload_repo),
        ],
        failed_step=MarkFailedStep(upload_repo, ExtractionFailureRepository()),
        timeout_seconds=settings.processing_timeout_seconds,
    )
