from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from statement_ingest.config.settings import Settings
from statement_ingest.database.models import (
    ExtractionFailureRecord,
    LedgerCounts,
    QualityCheckRecord,
    UploadRecord,
)
from statement_ingest.database.repositories.account_repository import AccountRepository
from statement_ingest.database.repositories.entity_repository import EntityRepository
from statement_ingest.database.repositories.extraction_failure_repository import (
    ExtractionFailureRepository,
)
from statement_ingest.database.repositories.ledger_repository import LedgerRepository
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.database.repositories.quality_check_repository import QualityCheckRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.dispatcher import ExtractionDispatcher
from statement_ingest.ledger.data_reverter import DataReverter
from statement_ingest.ledger.data_writer import DataWriter
from statement_ingest.logging.logger import Log
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import EntityMatcher
from statement_ingest.pipeline.exceptions import ErrorKind, PipelineError, ValidationError
from statement_ingest.pipeline.pipeline import ProcessingSummary
from statement_ingest.pipeline.processor import Processor, build_processor
from statement_ingest.pipeline.results import Notice, OperationResult
from statement_ingest.preprocessing.exceptions import PreprocessingError
from statement_ingest.preprocessing.pdf_factory import PdfExtractorFactory
from statement_ingest.preprocessing.preprocessor import FilePreprocessor
from statement_ingest.quality.engine import QualityCheckEngine
from statement_ingest.quality.fix_orchestrator import FixOrchestrator
from statement_ingest.quality.models import FixOutcome, QualityCheckOutcome
from statement_ingest.storage.file_storage import FileStorage
from statement_ingest.uploads.confirm import ConfirmationSummary, UploadConfirmer
from statement_ingest.uploads.intake import UploadIntake
from statement_ingest.uploads.preview import PreviewBuilder, UploadPreview

T = TypeVar("T")


class UploadService:
    """Entry point for every ingestion operation.

    Each method takes the acting ``user_id`` explicitly and returns an
    OperationResult: domain failures come back as an error kind and message,
    never as a raised exception.
    """

    def __init__(
        self,
        *,
        intake: UploadIntake,
        processor: Processor,
        preview_builder: PreviewBuilder,
        confirmer: UploadConfirmer,
        engine: QualityCheckEngine,
        fix_orchestrator: FixOrchestrator,
        reverter: DataReverter,
        failure_repo: ExtractionFailureRepository,
    ) -> None:
        self._intake = intake
        self._processor = processor
        self._preview_builder = preview_builder
        self._confirmer = confirmer
        self._engine = engine
        self._fix_orchestrator = fix_orchestrator
        self._reverter = reverter
        self._failure_repo = failure_repo

    def create_upload(
        self, user_id: str, file_bytes: bytes, mime_type: str, filename: str
    ) -> OperationResult[UploadRecord]:
        def run() -> OperationResult[UploadRecord]:
            result = self._intake.create(user_id, file_bytes, mime_type, filename)
            notices = []
            if result.duplicate is not None:
                notices.append(Notice(ErrorKind.DUPLICATE, str(result.duplicate)))
            return OperationResult.success(result.upload, notices)

        return self._guard("CreateUpload", filename, run)

    def trigger_processing(
        self, user_id: str, upload_id: str, preset: str | None = None
    ) -> OperationResult[ProcessingSummary]:
        def run() -> OperationResult[ProcessingSummary]:
            summary = self._processor.process(user_id, upload_id, preset)
            notices = []
            if summary.link_error:
                notices.append(Notice(ErrorKind.LINK, summary.link_error))
            return OperationResult.success(summary, notices)

        return self._guard("TriggerProcessing", upload_id, run)

    def get_preview(self, user_id: str, upload_id: str) -> OperationResult[UploadPreview]:
        return self._guard(
            "GetPreview",
            upload_id,
            lambda: OperationResult.success(self._preview_builder.build(user_id, upload_id)),
        )

    def confirm_upload(
        self, user_id: str, upload_id: str, account_id: str | None = None
    ) -> OperationResult[ConfirmationSummary]:
        return self._guard(
            "ConfirmUpload",
            upload_id,
            lambda: OperationResult.success(self._confirmer.confirm(user_id, upload_id, account_id)),
        )

    def run_quality_check(
        self, user_id: str, upload_id: str
    ) -> OperationResult[QualityCheckOutcome]:
        def run() -> OperationResult[QualityCheckOutcome]:
            outcome = self._engine.run(user_id, upload_id)
            if outcome.overall_passed:
                return OperationResult.success(outcome)
            fix = self._fix_orchestrator.run_phase(user_id, outcome.check_id)
            return OperationResult.success(
                QualityCheckOutcome(
                    check_id=fix.check_id,
                    status="fixed" if fix.fixed else "unresolved",
                    overall_passed=fix.fixed,
                    report=fix.report or outcome.report,
                    fix_count=1,
                )
            )

        return self._guard("RunQualityCheck", upload_id, run)

    def trigger_fix(self, user_id: str, upload_id: str, phase: int) -> OperationResult[FixOutcome]:
        return self._guard(
            "TriggerFix",
            upload_id,
            lambda: OperationResult.success(self._fix_orchestrator.trigger(user_id, upload_id, phase)),
        )

    def revert(self, user_id: str, upload_id: str) -> OperationResult[LedgerCounts]:
        return self._guard(
            "Revert",
            upload_id,
            lambda: OperationResult.success(self._reverter.revert(user_id, upload_id)),
        )

    def resolve_failure(
        self, user_id: str, failure_id: str, notes: str
    ) -> OperationResult[ExtractionFailureRecord]:
        return self._guard(
            "ResolveFailure",
            failure_id,
            lambda: OperationResult.success(self._failure_repo.resolve(user_id, failure_id, notes)),
        )

    def resolve_quality_check(
        self, user_id: str, check_id: str, notes: str
    ) -> OperationResult[QualityCheckRecord]:
        return self._guard(
            "ResolveQualityCheck",
            check_id,
            lambda: OperationResult.success(self._fix_orchestrator.resolve(user_id, check_id, notes)),
        )

    def list_failures(
        self, user_id: str, include_resolved: bool = False
    ) -> OperationResult[list[ExtractionFailureRecord]]:
        return self._guard(
            "ListFailures",
            user_id,
            lambda: OperationResult.success(self._failure_repo.list_for_user(user_id, include_resolved)),
        )

    @staticmethod
    def _guard(
        operation: str, subject: str, run: Callable[[], OperationResult[T]]
    ) -> OperationResult[T]:
        try:
            return run()
        except PipelineError as exc:
            Log.warning(f"{operation} {subject} rejected ({exc.kind.value}): {exc}")
            return OperationResult.failure(exc)
        except PreprocessingError as exc:
            Log.warning(f"{operation} {subject} could not read file: {exc}")
            return OperationResult.failure(ValidationError(str(exc)))
        except Exception as exc:
            Log.exception(f"{operation} {subject} failed unexpectedly: {exc}")
            return OperationResult.internal_failure(f"{operation} failed: {exc}")


def build_upload_service(
    settings: Settings,
    *,
    storage: FileStorage | None = None,
    dispatcher: ExtractionDispatcher | None = None,
) -> UploadService:
    """Wire an UploadService with database repositories. The pool must be open."""
    storage = storage or FileStorage(Path(settings.files_root))
    dispatcher = dispatcher or ExtractionDispatcher(settings)
    upload_repo = UploadRepository()
    ledger_repo = LedgerRepository()
    check_repo = QualityCheckRepository()
    entity_repo = EntityRepository()
    failure_repo = ExtractionFailureRepository()
    account_repo = AccountRepository()
    account_matcher = AccountMatcher(account_repo)
    entity_matcher = EntityMatcher(entity_repo)
    writer = DataWriter(ledger_repo)
    engine = QualityCheckEngine(upload_repo, ledger_repo, check_repo)
    fix_orchestrator = FixOrchestrator(
        upload_repo=upload_repo,
        check_repo=check_repo,
        llm_settings_repo=LlmSettingsRepository(settings.extraction_mode),
        storage=storage,
        preprocessor=FilePreprocessor(PdfExtractorFactory.create(settings)),
        dispatcher=dispatcher,
        entity_matcher=entity_matcher,
        account_matcher=account_matcher,
        writer=writer,
        engine=engine,
    )
    return UploadService(
        intake=UploadIntake(upload_repo, storage, settings.max_upload_size_bytes),
        processor=build_processor(settings, storage=storage, dispatcher=dispatcher),
        preview_builder=PreviewBuilder(upload_repo, account_matcher, entity_repo),
        confirmer=UploadConfirmer(upload_repo, account_repo, account_matcher, entity_matcher, writer),
        engine=engine,
        fix_orchestrator=fix_orchestrator,
        reverter=DataReverter(ledger_repo),
        failure_repo=failure_repo,
    )
