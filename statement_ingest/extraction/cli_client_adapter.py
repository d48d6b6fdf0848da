import json

import httpx

from statement_ingest.extraction.client_base import BaseOracleClient, OracleAttachment
from statement_ingest.extraction.exceptions import ExtractionError, ExtractionNetworkError


class CliClientAdapter(BaseOracleClient):
    """Extraction oracle reached through a remote CLI wrapper over HTTP.

    The wrapper accepts ``{"prompt", "model", "file"?}`` and answers
    ``{"result": ...}``, where ``result`` is the model's text output.
    Temperature and schema are embedded in the prompt by the caller.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        timeout_seconds: int,
        auth_token: str = "",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("cli_endpoint is required for extraction_mode=cli")
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._endpoint = endpoint
        self._client = httpx.Client(headers=headers, timeout=timeout_seconds, transport=transport)

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
        _ = temperature, json_schema
        prompt = f"{system_prompt}\n\n{user_prompt}" if system_prompt else user_prompt
        body: dict[str, object] = {"prompt": prompt, "model": model}
        if attachment is not None:
            body["file"] = {
                "content": attachment.base64_data,
                "filename": attachment.filename,
                "mimeType": attachment.media_type,
            }
        try:
            response = self._client.post(self._endpoint, json=body)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ExtractionNetworkError(f"CLI endpoint network error: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ExtractionNetworkError(f"CLI endpoint request failed: {exc}") from exc

        if response.status_code >= 400:
            raise ExtractionNetworkError(
                f"CLI endpoint error ({response.status_code}): {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ExtractionError(f"CLI endpoint returned non-JSON body: {exc}") from exc
        if not isinstance(payload, dict) or "result" not in payload:
            raise ExtractionError("CLI endpoint response has no 'result' field")
        result = payload["result"]
        return result if isinstance(result, str) else json.dumps(result)
