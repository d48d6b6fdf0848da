from statement_ingest.database.models import EntityRecord
from statement_ingest.database.repositories.entity_repository import EntityRepository
from statement_ingest.logging.logger import Log
from statement_ingest.matching.models import EntityMatch


def match_entity(owner_name: str | None, entities: list[EntityRecord]) -> EntityMatch:
    """Resolve a detected statement owner to one of the user's entities.

    Never creates an entity: an unmatched name is reported as a new owner and
    left for the user to confirm.
    """
    name = (owner_name or "").strip()
    if not entities:
        return EntityMatch(entity=None, is_new_owner=bool(name), owner_name=name or None)

    if not name:
        default = next((entity for entity in entities if entity.is_default), entities[0])
        return EntityMatch(entity=default)

    wanted = name.lower()
    for entity in entities:
        if entity.entity_name.strip().lower() == wanted:
            return EntityMatch(entity=entity, owner_name=name)
    for entity in entities:
        candidate = entity.entity_name.strip().lower()
        if candidate and (wanted in candidate or candidate in wanted):
            return EntityMatch(entity=entity, owner_name=name)
    return EntityMatch(entity=None, is_new_owner=True, owner_name=name)


class EntityMatcher:
    """Looks up the user's entities and matches the statement owner."""

    def __init__(self, entity_repo: EntityRepository) -> None:
        self._entity_repo = entity_repo

    def resolve(self, user_id: str, owner_name: str | None) -> EntityMatch:
        entities = self._entity_repo.list_for_user(user_id)
        if not entities and not (owner_name or "").strip():
            default = self._entity_repo.ensure_default(user_id)
            Log.info(f"Created default entity {default.id} for user {user_id}")
            return EntityMatch(entity=default)
        match = match_entity(owner_name, entities)
        if match.is_new_owner:
            Log.info(f"New statement owner detected for user {user_id}: {match.owner_name}")
        return match
