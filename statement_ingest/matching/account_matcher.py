from datetime import datetime, timezone

from statement_ingest.database.models import AccountRecord
from statement_ingest.database.repositories.account_repository import AccountRepository
from statement_ingest.extraction.models import DetectedAccountInfo
from statement_ingest.logging.logger import Log
from statement_ingest.matching.models import (
    RULE_INSTITUTION,
    RULE_INSTITUTION_AND_NUMBER,
    RULE_NICKNAME,
    RULE_NONE,
    RULE_PREVIOUS_LINK,
    AccountMatch,
    AccountProposal,
    LinkDecision,
)
from statement_ingest.matching.normalize import normalize_institution, number_hint_key

UNKNOWN_INSTITUTION = "Unknown"
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(accounts: list[AccountRecord]) -> list[AccountRecord]:
    return sorted(
        accounts,
        key=lambda account: (account.created_at or _EPOCH, account.id),
        reverse=True,
    )


def match_account(info: DetectedAccountInfo, accounts: list[AccountRecord]) -> AccountMatch:
    """Pick an existing active account for the detected info.

    Rules are tried in order and the first with any candidate wins; within a
    rule the most recently created account is chosen (id breaks exact ties).
    """
    candidates = _newest_first([account for account in accounts if account.is_active])
    institution = normalize_institution(info.institution_name)
    hint = number_hint_key(info.account_number_hint)

    if institution:
        same_institution = [
            account for account in candidates
            if normalize_institution(account.institution_name) == institution
        ]
        if hint:
            for account in same_institution:
                if number_hint_key(account.account_number_hint) == hint:
                    return AccountMatch(account, RULE_INSTITUTION_AND_NUMBER)
        for account in same_institution:
            if not hint or not number_hint_key(account.account_number_hint):
                return AccountMatch(account, RULE_INSTITUTION)

    nickname = (info.account_nickname or "").strip().lower()
    if nickname:
        for account in candidates:
            existing = (account.account_nickname or "").strip().lower()
            if existing and (nickname in existing or existing in nickname):
                return AccountMatch(account, RULE_NICKNAME)

    return AccountMatch(None, RULE_NONE)


def new_account_fields(info: DetectedAccountInfo, filename: str) -> tuple[str, str]:
    """Institution name and nickname for an account created from this upload."""
    if info.institution_name:
        return info.institution_name, info.account_nickname or f"{info.institution_name} Account"
    return UNKNOWN_INSTITUTION, info.account_nickname or filename


class AccountMatcher:
    """Resolves the account an upload's data is written to, creating one if needed."""

    def __init__(self, account_repo: AccountRepository) -> None:
        self._account_repo = account_repo

    def propose(
        self, user_id: str, info: DetectedAccountInfo, filename: str
    ) -> AccountProposal:
        """Compute the mapping a link would use, without writing anything."""
        match = match_account(info, self._account_repo.list_active(user_id))
        if match.account is not None:
            return AccountProposal(
                action="match_existing",
                rule=match.rule,
                account_id=match.account.id,
                institution_name=match.account.institution_name,
                account_nickname=match.account.account_nickname,
            )
        institution, nickname = new_account_fields(info, filename)
        return AccountProposal(
            action="create_new",
            rule=RULE_NONE,
            account_id=None,
            institution_name=institution,
            account_nickname=nickname,
        )

    def resolve(
        self,
        user_id: str,
        info: DetectedAccountInfo,
        *,
        filename: str,
        previous_account_id: str | None = None,
        entity_id: str | None = None,
    ) -> LinkDecision:
        """Reuse the previous link, match an existing account, or create one."""
        if previous_account_id is not None:
            previous = self._account_repo.find_active(user_id, previous_account_id)
            if previous is not None:
                Log.info(f"Reusing linked account {previous.id} for user {user_id}")
                return LinkDecision(previous, RULE_PREVIOUS_LINK)
            Log.warning(
                f"Previously linked account {previous_account_id} is no longer active, re-matching"
            )

        match = match_account(info, self._account_repo.list_active(user_id))
        if match.account is not None:
            Log.info(f"Matched account {match.account.id} by {match.rule}")
            return LinkDecision(match.account, match.rule)

        institution, nickname = new_account_fields(info, filename)
        account = self._account_repo.create(
            user_id,
            institution_name=institution,
            account_type=info.account_type,
            account_number_hint=info.account_number_hint,
            account_nickname=nickname,
            account_group=info.account_group,
            entity_id=entity_id,
        )
        Log.info(f"Created account {account.id} ({institution}) for user {user_id}")
        return LinkDecision(account, RULE_NONE, created=True)
