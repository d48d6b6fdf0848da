from abc import ABC, abstractmethod
from dataclasses import dataclass

from statement_ingest.database.models import LedgerCounts, UploadRecord
from statement_ingest.extraction.dispatcher import DispatchResult
from statement_ingest.matching.models import EntityMatch, LinkDecision
from statement_ingest.preprocessing.models import PreparedFile


@dataclass(frozen=True)
class ProcessingSummary:
    """What a processing run produced, returned by TriggerProcessing."""

    upload_id: str
    parse_status: str
    process_count: int
    transactions: int = 0
    positions: int = 0
    balances: int = 0
    confidence: str | None = None
    account_id: str | None = None
    account_created: bool = False
    new_owner: str | None = None
    link_error: str | None = None
    stale_rows: bool = False


@dataclass(slots=True)
class PipelineContext:
    user_id: str
    upload_id: str
    preset: str | None = None
    upload: UploadRecord | None = None
    llm_mode: str = ""
    raw_bytes: bytes = b""
    prepared: PreparedFile | None = None
    dispatch: DispatchResult | None = None
    entity_match: EntityMatch | None = None
    link: LinkDecision | None = None
    written: LedgerCounts | None = None
    link_error: str | None = None
    parse_status: str = ""
    error_message: str = ""

    @property
    def claimed(self) -> bool:
        """True once this run owns the upload's ``processing`` status."""
        return self.upload is not None

    @property
    def stale_rows(self) -> bool:
        """True when the upload was confirmed before this run and this run wrote nothing.

        The previous write's rows stay in the ledger, unconfirmed, until a
        later run writes successfully.
        """
        if self.upload is None or self.upload.confirmed_at is None:
            return False
        return self.written is None

    def require_upload(self) -> UploadRecord:
        if self.upload is None:
            raise ValueError("PipelineContext.upload must be set by BeginProcessingStep")
        return self.upload

    def summary(self) -> ProcessingSummary:
        extraction = self.dispatch.extraction if self.dispatch else None
        new_owner = None
        if self.entity_match is not None and self.entity_match.is_new_owner:
            new_owner = self.entity_match.owner_name
        return ProcessingSummary(
            upload_id=self.upload_id,
            parse_status=self.parse_status,
            process_count=self.upload.process_count if self.upload else 0,
            transactions=len(extraction.transactions) if extraction else 0,
            positions=len(extraction.positions) if extraction else 0,
            balances=len(extraction.balances) if extraction else 0,
            confidence=extraction.confidence if extraction else None,
            account_id=self.link.account.id if self.link else None,
            account_created=self.link.created if self.link else False,
            new_owner=new_owner,
            link_error=self.link_error,
            stale_rows=self.stale_rows,
        )


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
