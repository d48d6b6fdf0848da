from datetime import datetime, timezone
from typing import Any

from statement_ingest.database.models import QualityCheckRecord, UploadRecord
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.database.repositories.quality_check_repository import QualityCheckRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.dispatcher import ExtractionDispatcher
from statement_ingest.ledger.data_writer import DataWriter
from statement_ingest.logging.logger import Log
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import EntityMatcher
from statement_ingest.pipeline.exceptions import (
    InvalidStateError,
    OracleError,
    QualityCheckError,
    UnsupportedPhaseError,
)
from statement_ingest.preprocessing.preprocessor import FilePreprocessor
from statement_ingest.quality.engine import QualityCheckEngine
from statement_ingest.quality.feedback import build_fix_feedback
from statement_ingest.quality.models import CheckReport, FixOutcome
from statement_ingest.storage.file_storage import FileStorage

SUPPORTED_PHASE = 1
FIXABLE_CHECK_STATUSES = ("failed", "unresolved")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FixOrchestrator:
    """Runs the single automatic repair pass for a failed quality check.

    Phase 1 re-extracts the statement with the failed rules as feedback,
    rewrites the upload's rows and re-checks. Whatever the re-check says is
    final: the check lands on ``fixed`` or ``unresolved`` and nothing retries.
    """

    def __init__(
        self,
        *,
        upload_repo: UploadRepository,
        check_repo: QualityCheckRepository,
        llm_settings_repo: LlmSettingsRepository,
        storage: FileStorage,
        preprocessor: FilePreprocessor,
        dispatcher: ExtractionDispatcher,
        entity_matcher: EntityMatcher,
        account_matcher: AccountMatcher,
        writer: DataWriter,
        engine: QualityCheckEngine,
    ) -> None:
        self._upload_repo = upload_repo
        self._check_repo = check_repo
        self._llm_settings_repo = llm_settings_repo
        self._storage = storage
        self._preprocessor = preprocessor
        self._dispatcher = dispatcher
        self._entity_matcher = entity_matcher
        self._account_matcher = account_matcher
        self._writer = writer
        self._engine = engine

    def trigger(self, user_id: str, upload_id: str, phase: int) -> FixOutcome:
        """Manually start a fix for the upload's latest quality check.

        An ``unresolved`` check is left as history and a new ``failed`` check
        with the same results is opened for this attempt.

        Raises:
            UnsupportedPhaseError: for any phase other than 1.
            InvalidStateError: if the latest check is not failed or unresolved.
        """
        _require_supported(phase)
        check = self._check_repo.find_latest_for_upload(user_id, upload_id)
        if check.check_status not in FIXABLE_CHECK_STATUSES:
            raise InvalidStateError(
                f"Latest quality check for upload {upload_id} is '{check.check_status}', "
                f"expected one of {list(FIXABLE_CHECK_STATUSES)}"
            )
        if check.check_status == "unresolved":
            upload = self._upload_repo.find_by_id(user_id, upload_id)
            check = self._check_repo.create(
                user_id,
                upload_id,
                check_status="failed",
                checks=check.checks,
                extraction_snapshot=upload.extracted_data,
                linked_account_id=upload.account_id,
            )
            Log.info(f"Opened quality check {check.id} for manual fix of upload {upload_id}")
        return self.run_phase(user_id, check.id, phase)

    def run_phase(self, user_id: str, check_id: str, phase: int = SUPPORTED_PHASE) -> FixOutcome:
        """Run one fix pass against a failed check.

        Failures inside the pass are recorded on the check and the upload and
        reported as ``fixed=False``; they are not raised.

        Raises:
            QualityCheckError: if the outcome itself cannot be recorded.
        """
        _require_supported(phase)
        check = self._check_repo.find_by_id(user_id, check_id)
        upload = self._upload_repo.find_by_id(user_id, check.upload_id)
        if upload.parse_status != "qc_failed":
            raise InvalidStateError(
                f"Upload {upload.id} must be qc_failed to fix (status: {upload.parse_status})"
            )

        attempt: dict[str, Any] = {
            "phase": phase,
            "started_at": _now(),
            "completed_at": None,
            "status": "running",
            "re_check": None,
            "error": None,
        }
        check = self._check_repo.start_fix(user_id, check.id, attempt)
        self._upload_repo.transition_status(
            user_id,
            upload.id,
            from_statuses=("qc_failed",),
            to_status="qc_fixing",
            qc_status_message="Attempting automatic fix",
            quality_check_id=check.id,
        )
        Log.info(f"Phase {phase} fix started for quality check {check.id} (upload {upload.id})")

        try:
            report = self._repair(user_id, upload, check)
        except Exception as exc:
            Log.exception(f"Phase {phase} fix failed for quality check {check.id}: {exc}")
            attempt.update(completed_at=_now(), status="error", error=str(exc))
            self._close_attempt(
                user_id,
                check.id,
                upload.id,
                fixed=False,
                attempt=attempt,
                message=f"Auto-fix failed: {exc}",
            )
            return FixOutcome(check_id=check.id, fixed=False, error=str(exc))

        fixed = report.overall_passed
        attempt.update(
            completed_at=_now(),
            status="succeeded" if fixed else "failed",
            re_check=report.to_payload(),
        )
        self._close_attempt(
            user_id,
            check.id,
            upload.id,
            fixed=fixed,
            attempt=attempt,
            checks=report.to_payload() if fixed else None,
            message=None if fixed else f"Auto-fix did not resolve: {report.summary}",
        )
        Log.info(
            f"Phase {phase} fix for quality check {check.id}: "
            f"{'fixed' if fixed else 'unresolved'} ({report.summary})"
        )
        return FixOutcome(check_id=check.id, fixed=fixed, report=report)

    def resolve(self, user_id: str, check_id: str, notes: str) -> QualityCheckRecord:
        """Close a failed or unresolved check by hand without re-extracting."""
        check = self._check_repo.resolve(user_id, check_id, notes)
        self._upload_repo.transition_status(
            user_id,
            check.upload_id,
            from_statuses=("qc_failed",),
            to_status="completed",
            qc_status_message=f"Resolved manually: {notes}",
        )
        Log.info(f"Quality check {check_id} resolved manually")
        return check

    def _repair(self, user_id: str, upload: UploadRecord, check: QualityCheckRecord) -> CheckReport:
        feedback = build_fix_feedback(CheckReport.from_payload(check.checks))
        raw_bytes = self._storage.load(upload.file_path)
        prepared = self._preprocessor.prepare(raw_bytes, upload.file_type)
        result = self._dispatcher.extract(
            prepared,
            file_type=upload.file_type,
            filename=upload.filename,
            mode=self._llm_settings_repo.get_mode(user_id),
            preset=(upload.processing_settings or {}).get("preset"),
            feedback=feedback,
        )
        extraction = result.extraction
        if not extraction.has_data:
            raise OracleError(
                "Re-extraction returned no transactions, positions or balances; "
                "existing rows were kept"
            )
        entity = self._entity_matcher.resolve(user_id, extraction.account_info.owner_name)
        decision = self._account_matcher.resolve(
            user_id,
            extraction.account_info,
            filename=upload.filename,
            previous_account_id=upload.account_id,
            entity_id=entity.entity.id if entity.entity else None,
        )
        self._writer.write(user_id, upload.id, decision.account.id, extraction)
        self._upload_repo.replace_extraction(
            user_id,
            upload.id,
            extracted_data=extraction.to_payload(),
            raw_llm_response=result.raw_response,
            detected_account_info=extraction.to_payload()["account_info"],
            statement_start_date=extraction.statement_start_date,
            statement_end_date=extraction.statement_end_date,
        )
        return self._engine.evaluate_extraction(user_id, upload.id, decision.account.id, extraction)

    def _close_attempt(
        self,
        user_id: str,
        check_id: str,
        upload_id: str,
        *,
        fixed: bool,
        attempt: dict[str, Any],
        message: str | None,
        checks: dict[str, Any] | None = None,
    ) -> None:
        """Record the attempt and move the upload out of ``qc_fixing``.

        Raises:
            QualityCheckError: if the outcome could not be recorded. The upload
                is still released from ``qc_fixing`` on a best-effort basis.
        """
        try:
            self._check_repo.finish_fix(
                user_id, check_id, fixed=fixed, attempt=attempt, checks=checks
            )
            self._finish_upload(user_id, upload_id, fixed=fixed, message=message)
        except Exception as exc:
            Log.exception(f"Failed to record fix outcome for quality check {check_id}: {exc}")
            self._release(user_id, upload_id, fixed=fixed, error=str(exc))
            raise QualityCheckError(f"Fix outcome could not be recorded: {exc}") from exc

    def _release(self, user_id: str, upload_id: str, *, fixed: bool, error: str) -> None:
        try:
            self._upload_repo.transition_status(
                user_id,
                upload_id,
                from_statuses=("qc_fixing",),
                to_status="completed" if fixed else "qc_failed",
                qc_status_message=f"Fix outcome not recorded: {error}",
            )
        except Exception as exc:
            Log.error(f"Failed to release upload {upload_id} from qc_fixing: {exc}")

    def _finish_upload(self, user_id: str, upload_id: str, *, fixed: bool, message: str | None) -> None:
        self._upload_repo.transition_status(
            user_id,
            upload_id,
            from_statuses=("qc_fixing",),
            to_status="completed" if fixed else "qc_failed",
            qc_status_message=message,
        )


def _require_supported(phase: int) -> None:
    if phase != SUPPORTED_PHASE:
        raise UnsupportedPhaseError(
            f"Fix phase {phase} is not supported; only phase {SUPPORTED_PHASE} is available"
        )
