import json

import httpx
import pytest

from statement_ingest.extraction.cli_client_adapter import CliClientAdapter
from statement_ingest.extraction.client_base import OracleAttachment
from statement_ingest.extraction.exceptions import ExtractionError, ExtractionNetworkError


def _adapter(handler, auth_token: str = "") -> CliClientAdapter:  # type: ignore[no-untyped-def]
    return CliClientAdapter(
        endpoint="http://cli.local/run",
        timeout_seconds=5,
        auth_token=auth_token,
        transport=httpx.MockTransport(handler),
    )


def _call(adapter: CliClientAdapter, attachment: OracleAttachment | None = None) -> str:
    return adapter.create_extraction(
        model="sonnet",
        temperature=0.0,
        system_prompt="system",
        user_prompt="user",
        json_schema={},
        attachment=attachment,
    )


class TestCliClientAdapter:
    def test_returns_string_result(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={"result": '{"a": 1}'}))
        assert _call(adapter) == '{"a": 1}'

    def test_serializes_object_result(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={"result": {"a": 1}}))
        assert json.loads(_call(adapter)) == {"a": 1}

    def test_posts_prompt_model_and_file(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": "{}"})

        attachment = OracleAttachment("document", "application/pdf", "JVBE", "jan.pdf")
        _call(_adapter(handler, auth_token="secret"), attachment)
        body = json.loads(seen[0].content)
        assert body["prompt"] == "system\n\nuser"
        assert body["model"] == "sonnet"
        assert body["file"] == {"content": "JVBE", "filename": "jan.pdf", "mimeType": "application/pdf"}
        assert seen[0].headers["Authorization"] == "Bearer secret"

    def test_omits_auth_header_without_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": "{}"})

        _call(_adapter(handler))
        assert "Authorization" not in seen[0].headers
        assert "file" not in json.loads(seen[0].content)

    def test_http_error_status_raises_network_error(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ExtractionNetworkError, match="502"):
            _call(adapter)

    def test_connect_error_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExtractionNetworkError, match="network error"):
            _call(_adapter(handler))

    def test_missing_result_raises(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={"output": "x"}))
        with pytest.raises(ExtractionError, match="no 'result'"):
            _call(adapter)

    def test_non_json_body_raises(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, text="plain text"))
        with pytest.raises(ExtractionError, match="non-JSON"):
            _call(adapter)

    def test_requires_endpoint(self) -> None:
        with pytest.raises(ValueError, match="cli_endpoint"):
            CliClientAdapter(endpoint="", timeout_seconds=5)
