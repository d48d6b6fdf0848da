from pathlib import Path

import pytest

from statement_ingest.pipeline.exceptions import StorageError
from statement_ingest.storage.file_storage import FileStorage, statement_file_path


class TestStatementFilePath:
    def test_layout(self) -> None:
        assert statement_file_path("u1", "jan.pdf", 1700000000000) == "u1/1700000000000_jan.pdf"

    def test_strips_directories_from_filename(self) -> None:
        assert statement_file_path("u1", "../../etc/passwd", 1) == "u1/1_passwd"
        assert statement_file_path("u1", "C:\\docs\\jan.pdf", 1) == "u1/1_jan.pdf"


class TestFileStorage:
    def test_save_and_load(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        relative = storage.save("u1", "jan.pdf", b"%PDF-1.4")
        assert relative.startswith("u1/")
        assert relative.endswith("_jan.pdf")
        assert (tmp_path / relative).read_bytes() == b"%PDF-1.4"
        assert storage.load(relative) == b"%PDF-1.4"

    def test_load_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError, match="Failed to read"):
            FileStorage(tmp_path).load("u1/missing.pdf")

    def test_remove_deletes_file(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path)
        relative = storage.save("u1", "jan.pdf", b"data")
        storage.remove(relative)
        assert not (tmp_path / relative).exists()

    def test_remove_missing_is_ignored(self, tmp_path: Path) -> None:
        FileStorage(tmp_path).remove("u1/missing.pdf")

    def test_path_escaping_root_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError, match="escapes files root"):
            FileStorage(tmp_path / "files").load("../outside.pdf")

    def test_unwritable_root_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        with pytest.raises(StorageError, match="Failed to store"):
            FileStorage(blocker).save("u1", "jan.pdf", b"data")
