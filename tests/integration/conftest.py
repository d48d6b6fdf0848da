import os
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from statement_ingest.config.settings import Settings
from statement_ingest.database.connection import apply_schema, close_pool, get_connection, init_pool
from statement_ingest.extraction.client_base import BaseOracleClient
from statement_ingest.extraction.dispatcher import ExtractionDispatcher
from statement_ingest.extraction.example_client_adapter import ExampleClientAdapter
from statement_ingest.extraction.factory import OracleBinding
from statement_ingest.service.upload_service import UploadService, build_upload_service
from statement_ingest.storage.file_storage import FileStorage

_USER_TABLES = (
    "transactions",
    "position_snapshots",
    "balance_snapshots",
    "uploaded_statements",
    "quality_checks",
    "extraction_failures",
    "accounts",
    "entities",
    "llm_settings",
)


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "statements_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to point at a scratch database")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def user_id(integration_pool: None) -> Generator[str, None, None]:
    """A fresh user per test; every row it owns is removed afterwards."""
    uid = str(uuid.uuid4())
    yield uid
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table in _USER_TABLES:
                cur.execute(f"DELETE FROM {table} WHERE user_id = %s", (uid,))
        conn.commit()


@pytest.fixture
def make_service(
    test_settings: Settings, tmp_path: Path
) -> Callable[[BaseOracleClient], UploadService]:
    """Build a database-backed service whose oracle is the given client."""

    def _make(client: BaseOracleClient) -> UploadService:
        mode = test_settings.extraction_mode
        dispatcher = ExtractionDispatcher(
            test_settings,
            bindings={mode: OracleBinding(mode=mode, client=client, model="test", temperature=0.0)},
        )
        return build_upload_service(
            test_settings, storage=FileStorage(tmp_path), dispatcher=dispatcher
        )

    return _make


@pytest.fixture
def service(
    make_service: Callable[[BaseOracleClient], UploadService],
    extraction_payload: dict[str, Any],
) -> UploadService:
    return make_service(ExampleClientAdapter(extraction_payload))
