from dataclasses import dataclass

from statement_ingest.database.models import (
    REUSABLE_STATUSES,
    AccountRecord,
    LedgerCounts,
    UploadRecord,
)
from statement_ingest.database.repositories.account_repository import AccountRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.exceptions import ExtractionValidationError
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.extraction.validator import validate_and_build
from statement_ingest.ledger.data_writer import DataWriter
from statement_ingest.logging.logger import Log
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import EntityMatcher
from statement_ingest.matching.models import LinkDecision
from statement_ingest.pipeline.exceptions import (
    AccountNotFoundError,
    InvalidStateError,
    LinkError,
    ValidationError,
)

RULE_CHOSEN = "chosen"


@dataclass(frozen=True)
class ConfirmationSummary:
    upload_id: str
    account_id: str
    rule: str
    account_created: bool
    written: LedgerCounts


class UploadConfirmer:
    """Writes an upload's stored extraction to the canonical tables.

    The oracle is never called: the rows come from ``extracted_data`` as
    saved by a processing run or copied from a reused duplicate. Confirming
    again replaces the rows of the previous confirmation.
    """

    def __init__(
        self,
        upload_repo: UploadRepository,
        account_repo: AccountRepository,
        account_matcher: AccountMatcher,
        entity_matcher: EntityMatcher,
        writer: DataWriter,
    ) -> None:
        self._upload_repo = upload_repo
        self._account_repo = account_repo
        self._account_matcher = account_matcher
        self._entity_matcher = entity_matcher
        self._writer = writer

    def confirm(
        self, user_id: str, upload_id: str, account_id: str | None = None
    ) -> ConfirmationSummary:
        """Link the upload to ``account_id`` (or a matched or new account) and write its rows.

        Raises:
            UploadNotFoundError: if the upload does not exist for this user.
            InvalidStateError: if the upload is not ``completed`` or ``partial``.
            ValidationError: if there is no usable stored extraction.
            AccountNotFoundError: if ``account_id`` is not an active account of the user.
            LinkError: if matching or writing fails.
        """
        upload = self._upload_repo.find_by_id(user_id, upload_id)
        extraction = self._stored_extraction(upload)

        if account_id is not None:
            decision = LinkDecision(self._chosen_account(user_id, account_id), RULE_CHOSEN)
        else:
            decision = self._match(user_id, upload, extraction)

        try:
            written = self._writer.write(user_id, upload_id, decision.account.id, extraction)
        except Exception as exc:
            raise LinkError(f"Writing data failed: {exc}") from exc

        Log.info(
            f"Confirmed upload {upload_id} into account {decision.account.id} "
            f"({decision.rule}, {written.total} rows)"
        )
        return ConfirmationSummary(
            upload_id=upload_id,
            account_id=decision.account.id,
            rule=decision.rule,
            account_created=decision.created,
            written=written,
        )

    @staticmethod
    def _stored_extraction(upload: UploadRecord) -> ExtractionResult:
        if upload.parse_status not in REUSABLE_STATUSES:
            raise InvalidStateError(
                f"Upload {upload.id} is {upload.parse_status}; only completed or partial uploads "
                f"can be confirmed"
            )
        if not upload.extracted_data:
            raise ValidationError(
                f"Upload {upload.id} has no extraction data to confirm. Process the file first."
            )
        try:
            extraction = validate_and_build(upload.extracted_data)
        except ExtractionValidationError as exc:
            raise ValidationError(f"Stored extraction is invalid: {exc}") from exc
        if not extraction.has_data:
            raise ValidationError(
                f"Upload {upload.id} has no transactions, positions or balances to write"
            )
        return extraction

    def _chosen_account(self, user_id: str, account_id: str) -> AccountRecord:
        account = self._account_repo.find_active(user_id, account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found or inactive")
        return account

    def _match(
        self, user_id: str, upload: UploadRecord, extraction: ExtractionResult
    ) -> LinkDecision:
        info = extraction.account_info
        try:
            entity = self._entity_matcher.resolve(user_id, info.owner_name).entity
            return self._account_matcher.resolve(
                user_id,
                info,
                filename=upload.filename,
                previous_account_id=upload.account_id,
                entity_id=entity.id if entity else None,
            )
        except Exception as exc:
            raise LinkError(f"Account linking failed: {exc}") from exc
