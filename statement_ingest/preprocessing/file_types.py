"""Accepted upload MIME types and the file type each one maps to."""

MIME_TO_FILE_TYPE: dict[str, str] = {
    "application/pdf": "pdf",
    "text/csv": "csv",
    "application/vnd.ms-excel": "csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/plain": "txt",
    "image/png": "png",
    "image/jpeg": "jpg",
    "application/x-ofx": "ofx",
    "application/ofx": "ofx",
    "application/x-qfx": "qfx",
    "application/vnd.intu.qfx": "qfx",
    "application/json": "json",
}

IMAGE_MEDIA_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
}

TEXT_FILE_TYPES = frozenset({"txt", "ofx", "qfx", "json"})
FILE_TYPES = frozenset(MIME_TO_FILE_TYPE.values())


def file_type_for_mime(mime_type: str) -> str | None:
    """Return the file type for a declared MIME type, ignoring parameters and case."""
    base = mime_type.split(";", 1)[0].strip().lower()
    return MIME_TO_FILE_TYPE.get(base)
