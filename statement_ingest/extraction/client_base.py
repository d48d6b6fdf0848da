from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class OracleAttachment:
    """Binary file content sent alongside the prompt."""

    kind: str
    media_type: str
    base64_data: str
    filename: str


class BaseOracleClient(ABC):
    """Contract for provider-specific extraction oracle clients."""

    @abstractmethod
    def create_extraction(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
        attachment: OracleAttachment | None = None,
    ) -> str:
        """Return the oracle's response as plain text.

        Raises:
            ExtractionNetworkError: on transport or provider failures.
            ExtractionError: when the provider answers without content.
        """
