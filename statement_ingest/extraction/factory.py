from dataclasses import dataclass
from typing import ClassVar

from statement_ingest.config.settings import Settings
from statement_ingest.extraction.cli_client_adapter import CliClientAdapter
from statement_ingest.extraction.client_base import BaseOracleClient
from statement_ingest.extraction.example_client_adapter import ExampleClientAdapter
from statement_ingest.extraction.openai_client_adapter import OpenAIClientAdapter


@dataclass(frozen=True)
class OracleBinding:
    """A configured client plus the model it should be called with."""

    mode: str
    client: BaseOracleClient
    model: str
    temperature: float


class OracleClientFactory:
    """Creates the oracle client for an extraction mode."""

    MODES: ClassVar[tuple[str, ...]] = ("api", "cli", "example")

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
        "groq": "https://api.groq.com/openai/v1",
        "together": "https://api.together.xyz/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "ollama": "http://localhost:11434/v1",
    }

    @classmethod
    def create(cls, mode: str, settings: Settings) -> OracleBinding:
        mode = mode.strip().lower()
        if mode == "example":
            return OracleBinding(mode, ExampleClientAdapter(), "example", 0.0)
        if mode == "cli":
            client = CliClientAdapter(
                endpoint=settings.cli_endpoint,
                timeout_seconds=settings.cli_timeout_seconds,
                auth_token=settings.cli_auth_token,
            )
            return OracleBinding(mode, client, settings.cli_model_name, 0.0)
        if mode == "api":
            provider = settings.extraction_provider.strip().lower()
            client = OpenAIClientAdapter(
                api_key=cls._resolve(provider, settings, "api_key") or "",
                timeout_seconds=cls._resolve(provider, settings, "timeout_seconds") or 120,
                base_url=cls._resolve_base_url(provider, settings),
            )
            return OracleBinding(
                mode,
                client,
                cls._resolve(provider, settings, "model_name") or "",
                max(0.0, min(0.2, settings.extraction_temperature)),
            )
        raise ValueError(f"Unknown extraction mode '{mode}'. Choose from: {list(cls.MODES)}")

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = settings.extraction_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "extraction_openai_compatible_base_url is required for "
                    "extraction_provider=openai_compatible"
                )
            return url
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return default_base_url
        supported = ["openai", "openai_compatible", *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS)]
        raise ValueError(f"Unknown extraction provider '{provider}'. Choose from: {supported}")

    @staticmethod
    def _resolve(provider: str, settings: Settings, suffix: str) -> str | int | None:
        return getattr(settings, f"extraction_{provider}_{suffix}", None)
