from statement_ingest.database.models import UploadRecord
from statement_ingest.database.repositories.ledger_repository import LedgerRepository
from statement_ingest.database.repositories.quality_check_repository import QualityCheckRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.exceptions import ExtractionValidationError
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.extraction.validator import validate_and_build
from statement_ingest.logging.logger import Log
from statement_ingest.pipeline.exceptions import InvalidStateError, QualityCheckError
from statement_ingest.quality.checker import run_checks
from statement_ingest.quality.models import CheckReport, QualityCheckOutcome


class QualityCheckEngine:
    """Validates an upload's written rows against its extraction.

    Each run records a new quality_checks row. If the engine itself fails the
    upload goes back to ``completed`` rather than staying in ``qc_running``.
    """

    def __init__(
        self,
        upload_repo: UploadRepository,
        ledger_repo: LedgerRepository,
        check_repo: QualityCheckRepository,
    ) -> None:
        self._upload_repo = upload_repo
        self._ledger_repo = ledger_repo
        self._check_repo = check_repo

    def run(self, user_id: str, upload_id: str) -> QualityCheckOutcome:
        """Check a completed upload.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
            InvalidStateError: if the upload is not ``completed``.
            QualityCheckError: if checking itself fails.
        """
        upload = self._upload_repo.find_by_id(user_id, upload_id)
        if upload.parse_status != "completed" or not self._upload_repo.transition_status(
            user_id,
            upload_id,
            from_statuses=("completed",),
            to_status="qc_running",
            qc_status_message="Running quality checks",
        ):
            raise InvalidStateError(
                f"Upload {upload_id} must be completed to run quality checks "
                f"(status: {upload.parse_status})"
            )
        Log.info(f"Running quality checks for upload {upload_id}")

        try:
            report = self.evaluate(user_id, upload)
            passed = report.overall_passed
            check = self._check_repo.create(
                user_id,
                upload_id,
                check_status="passed" if passed else "failed",
                checks=report.to_payload(),
                extraction_snapshot=upload.extracted_data,
                linked_account_id=upload.account_id,
            )
            self._upload_repo.transition_status(
                user_id,
                upload_id,
                from_statuses=("qc_running",),
                to_status="completed" if passed else "qc_failed",
                qc_status_message=None if passed else report.summary,
                quality_check_id=check.id,
            )
        except Exception as exc:
            Log.exception(f"Quality check engine failed for upload {upload_id}: {exc}")
            self._release(user_id, upload_id)
            raise QualityCheckError(f"Quality check failed to run: {exc}") from exc

        Log.info(f"Quality check {check.id} for upload {upload_id}: {report.summary}")
        return QualityCheckOutcome(
            check_id=check.id,
            status=check.check_status,
            overall_passed=passed,
            report=report,
        )

    def evaluate(self, user_id: str, upload: UploadRecord) -> CheckReport:
        """Run the rules for an upload's stored extraction and linked account."""
        if not upload.extracted_data:
            raise QualityCheckError(f"Upload {upload.id} has no extraction data")
        try:
            extraction = validate_and_build(upload.extracted_data)
        except ExtractionValidationError as exc:
            raise QualityCheckError(f"Stored extraction is invalid: {exc}") from exc
        return self.evaluate_extraction(user_id, upload.id, upload.account_id, extraction)

    def evaluate_extraction(
        self,
        user_id: str,
        upload_id: str,
        account_id: str | None,
        extraction: ExtractionResult,
    ) -> CheckReport:
        if account_id is None:
            raise QualityCheckError(f"Upload {upload_id} is not linked to an account")
        stats = self._ledger_repo.load_stats(user_id, upload_id, account_id)
        return run_checks(extraction, stats)

    def _release(self, user_id: str, upload_id: str) -> None:
        try:
            self._upload_repo.transition_status(
                user_id,
                upload_id,
                from_statuses=("qc_running",),
                to_status="completed",
                qc_status_message=None,
            )
        except Exception as exc:
            Log.error(f"Failed to release upload {upload_id} from qc_running: {exc}")
