import hashlib
from dataclasses import dataclass

from statement_ingest.database.models import REUSABLE_STATUSES, UploadRecord
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.logging.logger import Log
from statement_ingest.pipeline.exceptions import DuplicateError, StorageError, ValidationError
from statement_ingest.preprocessing.file_types import MIME_TO_FILE_TYPE, file_type_for_mime
from statement_ingest.storage.file_storage import FileStorage


@dataclass(frozen=True)
class IntakeResult:
    """The created upload plus an informational duplicate notice, if any."""

    upload: UploadRecord
    duplicate: DuplicateError | None = None
    reused_from: str | None = None


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class UploadIntake:
    """Validates an incoming file, stores its bytes and opens a ledger row."""

    def __init__(
        self,
        upload_repo: UploadRepository,
        storage: FileStorage,
        max_size_bytes: int,
    ) -> None:
        self._upload_repo = upload_repo
        self._storage = storage
        self._max_size_bytes = max_size_bytes

    def create(
        self, user_id: str, file_bytes: bytes, mime_type: str, filename: str
    ) -> IntakeResult:
        """Raises ValidationError before any state changes, StorageError on persistence failures."""
        file_type = self._validate(file_bytes, mime_type, filename)
        file_hash = content_hash(file_bytes)

        prior = self._upload_repo.find_by_hash(user_id, file_hash)
        reusable = next((u for u in prior if u.parse_status in REUSABLE_STATUSES), None)
        duplicate = None
        if prior:
            duplicate = DuplicateError(
                f"Identical file already uploaded as {prior[0].filename} ({prior[0].parse_status})"
            )

        path = self._storage.save(user_id, filename, file_bytes)
        try:
            upload = self._upload_repo.create(
                user_id=user_id,
                filename=filename,
                file_path=path,
                file_type=file_type,
                mime_type=mime_type,
                file_size_bytes=len(file_bytes),
                file_hash=file_hash,
                reuse_from=reusable,
            )
        except Exception as exc:
            Log.error(f"Ledger insert failed for {filename}, removing stored file: {exc}")
            self._cleanup(path)
            raise StorageError(f"Failed to create upload record: {exc}") from exc

        if reusable is not None:
            Log.info(f"Upload {upload.id} reuses extraction from upload {reusable.id}")
        Log.info(f"Created upload {upload.id} for user {user_id} ({file_type}, {len(file_bytes)} bytes)")
        return IntakeResult(
            upload=upload,
            duplicate=duplicate,
            reused_from=reusable.id if reusable else None,
        )

    def _validate(self, file_bytes: bytes, mime_type: str, filename: str) -> str:
        if not filename or not filename.strip():
            raise ValidationError("Filename is required")
        file_type = file_type_for_mime(mime_type or "")
        if file_type is None:
            raise ValidationError(
                f"Unsupported file type '{mime_type}'. Accepted: {sorted(MIME_TO_FILE_TYPE)}"
            )
        if not file_bytes:
            raise ValidationError("File is empty")
        if len(file_bytes) > self._max_size_bytes:
            raise ValidationError(
                f"File is {len(file_bytes)} bytes, limit is {self._max_size_bytes} bytes"
            )
        return file_type

    def _cleanup(self, path: str) -> None:
        try:
            self._storage.remove(path)
        except StorageError as exc:
            Log.error(f"Cleanup of {path} failed: {exc}")
