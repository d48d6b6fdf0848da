from typing import Any

import httpx
import openai

from statement_ingest.extraction.client_base import BaseOracleClient, OracleAttachment
from statement_ingest.extraction.exceptions import ExtractionError, ExtractionNetworkError


class OpenAIClientAdapter(BaseOracleClient):
    """Extraction oracle built on the OpenAI-compatible chat completions API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

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
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "statement_extraction",
                        "strict": True,
                        "schema": json_schema,
                    },
                },
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": self._user_content(user_prompt, attachment)},
                ],
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ExtractionNetworkError(f"Oracle network error: {exc}") from exc
        except openai.APIError as exc:
            raise ExtractionNetworkError(f"Oracle API error: {exc}") from exc

        if not response.choices:
            raise ExtractionError("Oracle returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise ExtractionError("Oracle returned empty response")
        return content

    @staticmethod
    def _user_content(
        user_prompt: str, attachment: OracleAttachment | None
    ) -> str | list[dict[str, Any]]:
        if attachment is None:
            return user_prompt
        data_url = f"data:{attachment.media_type};base64,{attachment.base64_data}"
        if attachment.kind == "image":
            part: dict[str, Any] = {"type": "image_url", "image_url": {"url": data_url}}
        else:
            part = {
                "type": "file",
                "file": {"filename": attachment.filename, "file_data": data_url},
            }
        return [{"type": "text", "text": user_prompt}, part]
