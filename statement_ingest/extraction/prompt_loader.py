from pathlib import Path

from statement_ingest.extraction.exceptions import ExtractionError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def _read(path: Path, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(f"Failed to load {label}: {exc}") from exc


def load_prompt_template(path: Path | None = None) -> str:
    """Load the extraction prompt template.

    The template carries ``{json_schema}`` and ``{file_instruction}``
    placeholders.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    return _read(path or _DEFAULT_PROMPT_DIR / "extraction_prompt.txt", "prompt template")


def load_json_schema(path: Path | None = None) -> str:
    """Load the extraction JSON schema as raw text.

    Raises:
        ExtractionError: if the file cannot be read.
    """
    return _read(path or _DEFAULT_PROMPT_DIR / "extraction_schema.json", "JSON schema")


def load_fix_template(path: Path | None = None) -> str:
    """Load the quality-fix feedback template (``{issues}`` placeholder)."""
    return _read(path or _DEFAULT_PROMPT_DIR / "quality_fix_prompt.txt", "fix prompt template")
