from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "statements"
    db_username: str = "statements"
    db_password: str = "secret"

    files_root: str = "/app/files"
    max_upload_size_bytes: int = 50 * 1024 * 1024
    processing_timeout_seconds: int = 300

    pdf_engine: str = "pdfplumber"

    extraction_mode: str = "api"
    extraction_provider: str = "openai"
    extraction_temperature: float = 0.0
    default_preset: str = "balanced"

    extraction_openai_api_key: str = ""
    extraction_openai_model_name: str = "gpt-4o-mini"
    extraction_openai_timeout_seconds: int = 120

    extraction_openai_compatible_base_url: str = ""
    extraction_openai_compatible_api_key: str = ""
    extraction_openai_compatible_model_name: str = ""
    extraction_openai_compatible_timeout_seconds: int = 120

    extraction_openrouter_api_key: str = ""
    extraction_openrouter_model_name: str = ""
    extraction_openrouter_timeout_seconds: int = 120

    extraction_groq_api_key: str = ""
    extraction_groq_model_name: str = ""
    extraction_groq_timeout_seconds: int = 120

    extraction_together_api_key: str = ""
    extraction_together_model_name: str = ""
    extraction_together_timeout_seconds: int = 120

    extraction_deepseek_api_key: str = ""
    extraction_deepseek_model_name: str = ""
    extraction_deepseek_timeout_seconds: int = 120

    extraction_ollama_api_key: str = "ollama"
    extraction_ollama_model_name: str = ""
    extraction_ollama_timeout_seconds: int = 300

    cli_endpoint: str = ""
    cli_auth_token: str = ""
    cli_model_name: str = "sonnet"
    cli_timeout_seconds: int = 300
