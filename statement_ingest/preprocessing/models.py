from dataclasses import dataclass, field


@dataclass(frozen=True)
class PreparedFile:
    """File content in the form the extraction oracle accepts.

    ``content_type`` is ``text`` (inline ``text``), ``image`` or ``document``
    (``base64_data`` with ``media_type``).
    """

    content_type: str
    text: str = ""
    media_type: str = ""
    base64_data: str = ""
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def is_binary(self) -> bool:
        return self.content_type in ("image", "document")
