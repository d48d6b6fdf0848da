from dataclasses import dataclass
from typing import Any

from statement_ingest.database.repositories.entity_repository import EntityRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.exceptions import ExtractionValidationError
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.extraction.validator import validate_and_build
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import match_entity
from statement_ingest.matching.models import AccountProposal, EntityMatch
from statement_ingest.pipeline.exceptions import ValidationError
from statement_ingest.quality.checker import latest_balances


@dataclass(frozen=True)
class UploadPreview:
    """Extraction, proposed account mapping and summary stats for one upload."""

    upload_id: str
    parse_status: str
    extraction: dict[str, Any]
    account: AccountProposal
    entity: EntityMatch
    stats: dict[str, Any]


class PreviewBuilder:
    """Read-only view of what confirming an upload would do."""

    def __init__(
        self,
        upload_repo: UploadRepository,
        account_matcher: AccountMatcher,
        entity_repo: EntityRepository,
    ) -> None:
        self._upload_repo = upload_repo
        self._account_matcher = account_matcher
        self._entity_repo = entity_repo

    def build(self, user_id: str, upload_id: str) -> UploadPreview:
        upload = self._upload_repo.find_by_id(user_id, upload_id)
        if not upload.extracted_data:
            raise ValidationError(f"Upload {upload_id} has no extraction data to preview")
        try:
            extraction = validate_and_build(upload.extracted_data)
        except ExtractionValidationError as exc:
            raise ValidationError(f"Stored extraction is invalid: {exc}") from exc

        proposal = self._account_matcher.propose(user_id, extraction.account_info, upload.filename)
        entity = match_entity(
            extraction.account_info.owner_name, self._entity_repo.list_for_user(user_id)
        )
        stats = {
            "transactions": len(extraction.transactions),
            "positions": len(extraction.positions),
            "balances": len(extraction.balances),
            "confidence": extraction.confidence,
            "statement_start_date": extraction.statement_start_date,
            "statement_end_date": extraction.statement_end_date,
            "total_value": _total_value(extraction),
            "notes": list(extraction.notes),
            "confirmed": upload.confirmed_at is not None,
        }
        return UploadPreview(
            upload_id=upload.id,
            parse_status=upload.parse_status,
            extraction=extraction.to_payload(),
            account=proposal,
            entity=entity,
            stats=stats,
        )


def _total_value(extraction: ExtractionResult) -> float | None:
    values = [
        b.liquidation_value for b in latest_balances(extraction) if b.liquidation_value is not None
    ]
    return sum(values) if values else None
