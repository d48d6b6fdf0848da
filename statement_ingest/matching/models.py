from dataclasses import dataclass

from statement_ingest.database.models import AccountRecord, EntityRecord

RULE_INSTITUTION_AND_NUMBER = "institution_and_number"
RULE_INSTITUTION = "institution"
RULE_NICKNAME = "nickname"
RULE_PREVIOUS_LINK = "previous_link"
RULE_NONE = "none"


@dataclass(frozen=True)
class AccountMatch:
    """Outcome of matching detected account info against existing accounts."""

    account: AccountRecord | None
    rule: str = RULE_NONE

    @property
    def matched(self) -> bool:
        return self.account is not None


@dataclass(frozen=True)
class LinkDecision:
    """The account an upload is linked to and how it was chosen."""

    account: AccountRecord
    rule: str
    created: bool = False


@dataclass(frozen=True)
class AccountProposal:
    """Read-only proposal shown in a preview."""

    action: str
    rule: str
    account_id: str | None
    institution_name: str
    account_nickname: str | None


@dataclass(frozen=True)
class EntityMatch:
    """Outcome of resolving a statement owner to a household entity."""

    entity: EntityRecord | None
    is_new_owner: bool = False
    owner_name: str | None = None
