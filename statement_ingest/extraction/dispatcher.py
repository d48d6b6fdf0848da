"""Invokes the extraction oracle and turns its reply into an ExtractionResult."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from statement_ingest.config.settings import Settings
from statement_ingest.extraction.client_base import OracleAttachment
from statement_ingest.extraction.exceptions import ExtractionError
from statement_ingest.extraction.factory import OracleBinding, OracleClientFactory
from statement_ingest.extraction.models import ExtractionResult
from statement_ingest.extraction.presets import ExtractionPreset, resolve_preset
from statement_ingest.extraction.prompt_loader import load_json_schema, load_prompt_template
from statement_ingest.extraction.validator import validate_and_build
from statement_ingest.logging.logger import Log
from statement_ingest.pipeline.exceptions import OracleError
from statement_ingest.preprocessing.models import PreparedFile

_SYSTEM_PROMPT = (
    "You convert financial statements into structured JSON. "
    "You never guess values that are not printed on the statement."
)


@dataclass(frozen=True)
class DispatchResult:
    """Parsed extraction plus the verbatim oracle reply."""

    extraction: ExtractionResult
    raw_response: dict[str, Any] = field(default_factory=dict)


class ExtractionDispatcher:
    """Calls the oracle for one prepared file. Performs no retries."""

    def __init__(
        self,
        settings: Settings,
        *,
        bindings: dict[str, OracleBinding] | None = None,
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
    ) -> None:
        self._settings = settings
        self._bindings: dict[str, OracleBinding] = dict(bindings or {})
        self._prompt_template = load_prompt_template(prompt_template_path)
        self._json_schema = load_json_schema(json_schema_path)
        self._json_schema_dict = json.loads(self._json_schema)

    def extract(
        self,
        prepared: PreparedFile,
        *,
        file_type: str,
        filename: str,
        mode: str,
        preset: str | None = None,
        feedback: str | None = None,
    ) -> DispatchResult:
        """Run one extraction.

        Raises:
            OracleError: on any oracle failure, unparseable reply or invalid shape.
            ValidationError: for an unknown preset.
        """
        resolved = resolve_preset(preset, self._settings.default_preset)
        try:
            binding = self._binding(mode)
        except ValueError as exc:
            raise OracleError(f"Oracle misconfigured: {exc}") from exc

        prompt = self._build_prompt(prepared, file_type, filename, resolved, feedback)
        attachment = None
        if prepared.is_binary:
            attachment = OracleAttachment(
                kind=prepared.content_type,
                media_type=prepared.media_type,
                base64_data=prepared.base64_data,
                filename=filename,
            )
        Log.debug(f"Extraction prompt for {filename}:\n{prompt}")

        try:
            raw_text = binding.client.create_extraction(
                model=binding.model,
                temperature=min(binding.temperature, resolved.temperature),
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=prompt,
                json_schema=self._json_schema_dict,
                attachment=attachment,
            )
        except ExtractionError as exc:
            raise OracleError(f"Extraction oracle failed: {exc}") from exc

        raw_response = {
            "mode": binding.mode,
            "model": binding.model,
            "preset": resolved.name,
            "text": raw_text,
        }
        try:
            extraction = validate_and_build(self._parse_json(raw_text))
        except ExtractionError as exc:
            raise OracleError(f"Extraction response rejected: {exc}", raw_response=raw_text) from exc

        Log.info(
            f"Extraction complete for {filename}: {len(extraction.transactions)} transactions, "
            f"{len(extraction.positions)} positions, {len(extraction.balances)} balances "
            f"(confidence {extraction.confidence})"
        )
        return DispatchResult(extraction=extraction, raw_response=raw_response)

    def _binding(self, mode: str) -> OracleBinding:
        key = mode.strip().lower()
        if key not in self._bindings:
            self._bindings[key] = OracleClientFactory.create(key, self._settings)
        return self._bindings[key]

    def _build_prompt(
        self,
        prepared: PreparedFile,
        file_type: str,
        filename: str,
        preset: ExtractionPreset,
        feedback: str | None,
    ) -> str:
        label = file_type.upper()
        if prepared.content_type == "text":
            text = prepared.text
            if preset.max_text_chars is not None and len(text) > preset.max_text_chars:
                text = text[: preset.max_text_chars] + "\n[... truncated ...]"
            text += _csv_samples(prepared.rows, preset.csv_sample_rows)
            instruction = f'Here is the content of "{filename}" ({label}):\n\n{text}'
        else:
            instruction = f'The {label} file "{filename}" is attached. Extract all financial data from it.'
        prompt = self._prompt_template.format(
            json_schema=self._json_schema,
            file_instruction=instruction,
        )
        if feedback:
            prompt = f"{prompt}\n\n{feedback}"
        return prompt

    @staticmethod
    def _parse_json(raw: str) -> dict[str, Any]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            start, end = cleaned.find("{"), cleaned.rfind("}")
            if start == -1 or end <= start:
                raise ExtractionError(f"Invalid JSON response: {exc}") from exc
            try:
                parsed = json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError as inner:
                raise ExtractionError(f"Invalid JSON response: {inner}") from inner

        if not isinstance(parsed, dict):
            raise ExtractionError("JSON response must be an object")
        return parsed


def _csv_samples(rows: list[dict[str, str]], limit: int) -> str:
    if not rows:
        return ""
    head = rows[:limit]
    tail = rows[limit:][-max(1, limit // 2):] if len(rows) > limit else []
    text = f"\n\n--- Pre-parsed CSV structure ({len(rows)} total rows) ---\n"
    text += f"First {len(head)} rows:\n{json.dumps(head, indent=2)}"
    if tail:
        text += f"\n\nLast {len(tail)} rows:\n{json.dumps(tail, indent=2)}"
    return text + "\n--- End pre-parsed data. Map the columns above to the schema. ---\n"
