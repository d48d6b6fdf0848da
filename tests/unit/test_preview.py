from typing import Any
from unittest.mock import MagicMock

import pytest

from statement_ingest.database.models import AccountRecord, EntityRecord, UploadRecord
from statement_ingest.database.repositories.account_repository import AccountRepository
from statement_ingest.database.repositories.entity_repository import EntityRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.pipeline.exceptions import ValidationError
from statement_ingest.uploads.preview import PreviewBuilder


def _upload(extracted_data: dict[str, Any] | None) -> UploadRecord:
    return UploadRecord(
        id="up1",
        user_id="u1",
        filename="jan.pdf",
        file_path="u1/1_jan.pdf",
        file_type="pdf",
        mime_type="application/pdf",
        file_size_bytes=10,
        file_hash="h",
        parse_status="completed",
        extracted_data=extracted_data,
    )


def _builder(
    upload: UploadRecord,
    accounts: list[AccountRecord],
    entities: list[EntityRecord],
) -> tuple[PreviewBuilder, MagicMock, MagicMock]:
    upload_repo = MagicMock(spec=UploadRepository)
    upload_repo.find_by_id.return_value = upload
    account_repo = MagicMock(spec=AccountRepository)
    account_repo.list_active.return_value = accounts
    entity_repo = MagicMock(spec=EntityRepository)
    entity_repo.list_for_user.return_value = entities
    return PreviewBuilder(upload_repo, AccountMatcher(account_repo), entity_repo), account_repo, entity_repo


class TestPreviewBuilder:
    def test_proposes_existing_account(self, extraction_payload: dict[str, Any]) -> None:
        account = AccountRecord(
            id="acc1", user_id="u1", institution_name="ACME Brokerage", account_number_hint="xxxx1234"
        )
        entity = EntityRecord(id="e1", user_id="u1", entity_name="Jordan Lee")
        builder, account_repo, entity_repo = _builder(_upload(extraction_payload), [account], [entity])

        preview = builder.build("u1", "up1")

        assert preview.account.action == "match_existing"
        assert preview.account.account_id == "acc1"
        assert preview.entity.entity is entity
        assert preview.stats["transactions"] == 2
        assert preview.stats["positions"] == 2
        assert preview.stats["total_value"] == 10000
        assert preview.stats["confirmed"] is False
        account_repo.create.assert_not_called()
        entity_repo.ensure_default.assert_not_called()

    def test_proposes_new_account_and_owner(self, extraction_payload: dict[str, Any]) -> None:
        builder, account_repo, _ = _builder(_upload(extraction_payload), [], [])

        preview = builder.build("u1", "up1")

        assert preview.account.action == "create_new"
        assert preview.account.account_id is None
        assert preview.account.account_nickname == "Acme Taxable"
        assert preview.entity.is_new_owner
        assert preview.entity.owner_name == "Jordan Lee"
        account_repo.create.assert_not_called()

    def test_requires_extraction(self) -> None:
        builder, _, _ = _builder(_upload(None), [], [])
        with pytest.raises(ValidationError, match="no extraction data"):
            builder.build("u1", "up1")
