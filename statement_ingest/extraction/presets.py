from dataclasses import dataclass

from statement_ingest.pipeline.exceptions import ValidationError


@dataclass(frozen=True)
class ExtractionPreset:
    """Processing-quality knobs applied to one extraction call."""

    name: str
    temperature: float
    max_text_chars: int | None
    csv_sample_rows: int


PRESETS: dict[str, ExtractionPreset] = {
    "fast": ExtractionPreset("fast", temperature=0.0, max_text_chars=60_000, csv_sample_rows=10),
    "balanced": ExtractionPreset("balanced", temperature=0.0, max_text_chars=200_000, csv_sample_rows=20),
    "quality": ExtractionPreset("quality", temperature=0.0, max_text_chars=400_000, csv_sample_rows=50),
    "max_quality": ExtractionPreset("max_quality", temperature=0.0, max_text_chars=None, csv_sample_rows=100),
}


def resolve_preset(name: str | None, default: str = "balanced") -> ExtractionPreset:
    """Look up a preset by name, falling back to ``default`` when unset.

    Raises:
        ValidationError: for unknown preset names.
    """
    key = (name or default).strip().lower()
    preset = PRESETS.get(key)
    if preset is None:
        raise ValidationError(f"Unknown processing preset '{key}'. Choose from: {sorted(PRESETS)}")
    return preset
