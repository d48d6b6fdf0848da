"""Offline extraction client.

Returns a fixed, valid extraction without network calls. Used for local
development, the ``example`` extraction mode and tests.
"""

import json
from typing import ClassVar

from statement_ingest.extraction.client_base import BaseOracleClient, OracleAttachment


class ExampleClientAdapter(BaseOracleClient):
    DEFAULT_RESPONSE: ClassVar[dict[str, object]] = {
        "account_info": {
            "institution_name": "Example Brokerage",
            "account_type": "individual",
            "account_number_hint": "0000",
            "account_nickname": None,
            "account_group": None,
            "owner_name": None,
        },
        "statement_start_date": None,
        "statement_end_date": None,
        "transactions": [],
        "positions": [],
        "balances": [],
        "confidence": "low",
        "notes": ["Example response"],
    }

    def __init__(self, response: dict[str, object] | None = None) -> None:
        self._response = response if response is not None else self.DEFAULT_RESPONSE
        self.calls: list[str] = []

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
        _ = model, temperature, system_prompt, json_schema, attachment
        self.calls.append(user_prompt)
        return json.dumps(self._response)
