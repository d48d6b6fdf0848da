import time
from pathlib import Path, PurePath

from statement_ingest.logging.logger import Log
from statement_ingest.pipeline.exceptions import StorageError


def statement_file_path(user_id: str, filename: str, timestamp_ms: int) -> str:
    """Build the relative storage path: ``{user_id}/{timestamp_ms}_{filename}``."""
    safe_name = PurePath(filename.replace("\\", "/")).name or "upload"
    return f"{user_id}/{timestamp_ms}_{safe_name}"


class FileStorage:
    """Stores upload bytes on local disk under ``files_root``."""

    def __init__(self, files_root: Path) -> None:
        self._files_root = files_root

    def save(self, user_id: str, filename: str, data: bytes) -> str:
        """Write bytes and return the relative storage path.

        Raises:
            StorageError: if the file cannot be written.
        """
        relative = statement_file_path(user_id, filename, int(time.time() * 1000))
        path = self._resolve(relative)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("xb") as handle:
                handle.write(data)
        except OSError as exc:
            raise StorageError(f"Failed to store {filename}: {exc}") from exc
        return relative

    def load(self, relative_path: str) -> bytes:
        """Raises StorageError if the file is missing or unreadable."""
        path = self._resolve(relative_path)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {relative_path}: {exc}") from exc

    def remove(self, relative_path: str) -> None:
        """Delete a stored file. Missing files are ignored."""
        path = self._resolve(relative_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to remove {relative_path}: {exc}") from exc
        Log.debug(f"Removed stored file {relative_path}")

    def _resolve(self, relative_path: str) -> Path:
        root = self._files_root.resolve()
        path = (root / relative_path).resolve()
        if root not in path.parents:
            raise StorageError(f"Storage path escapes files root: {relative_path}")
        return path
