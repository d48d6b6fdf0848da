import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from statement_ingest.database.models import LedgerCounts
from statement_ingest.main import _to_jsonable, build_parser, dispatch, main
from statement_ingest.pipeline.exceptions import ErrorKind, RevertError
from statement_ingest.pipeline.results import Notice, OperationResult
from statement_ingest.service.upload_service import UploadService


class TestParser:
    def test_user_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["qc", "up1"])

    def test_fix_defaults_to_phase_one(self) -> None:
        args = build_parser().parse_args(["fix", "up1", "--user", "u1"])
        assert args.phase == 1

    def test_rejects_unknown_preset(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["process", "up1", "--user", "u1", "--preset", "turbo"])


class TestDispatch:
    def test_upload_guesses_mime_from_name(self, tmp_path: Path) -> None:
        path = tmp_path / "jan.csv"
        path.write_bytes(b"Date,Amount\n")
        service = MagicMock(spec=UploadService)
        args = build_parser().parse_args(["upload", str(path), "--user", "u1"])

        dispatch(args, service)

        service.create_upload.assert_called_once_with("u1", b"Date,Amount\n", "text/csv", "jan.csv")

    def test_fix_passes_phase(self) -> None:
        service = MagicMock(spec=UploadService)
        args = build_parser().parse_args(["fix", "up1", "--user", "u1", "--phase", "2"])

        dispatch(args, service)

        service.trigger_fix.assert_called_once_with("u1", "up1", 2)

    def test_confirm_passes_account(self) -> None:
        service = MagicMock(spec=UploadService)
        args = build_parser().parse_args(["confirm", "up1", "--user", "u1", "--account", "acc9"])

        dispatch(args, service)

        service.confirm_upload.assert_called_once_with("u1", "up1", "acc9")

    def test_confirm_without_account_matches(self) -> None:
        service = MagicMock(spec=UploadService)
        args = build_parser().parse_args(["confirm", "up1", "--user", "u1"])

        dispatch(args, service)

        service.confirm_upload.assert_called_once_with("u1", "up1", None)

    def test_failures_include_resolved(self) -> None:
        service = MagicMock(spec=UploadService)
        args = build_parser().parse_args(["failures", "--user", "u1", "--all"])

        dispatch(args, service)

        service.list_failures.assert_called_once_with("u1", include_resolved=True)


class TestToJsonable:
    def test_nested_dataclasses(self) -> None:
        result = OperationResult.success(
            LedgerCounts(1, 2, 3), [Notice(ErrorKind.DUPLICATE, "seen before")]
        )

        payload = json.loads(json.dumps(_to_jsonable(result), default=str))

        assert payload["ok"] is True
        assert payload["value"] == {"transactions": 1, "positions": 2, "balances": 3}
        assert payload["notices"][0]["kind"] == "duplicate"


class TestMain:
    @patch("statement_ingest.main.Log")
    @patch("statement_ingest.main.close_pool")
    @patch("statement_ingest.main.init_pool")
    @patch("statement_ingest.main.build_upload_service")
    def test_failed_operation_exits_nonzero(
        self,
        mock_build: MagicMock,
        mock_init: MagicMock,
        mock_close: MagicMock,
        _mock_log: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_build.return_value.revert.return_value = OperationResult.failure(
            RevertError("Upload up1 has not been confirmed")
        )

        code = main(["revert", "up1", "--user", "u1"])

        assert code == 1
        assert json.loads(capsys.readouterr().out)["error_kind"] == "revert"
        mock_init.assert_called_once()
        mock_close.assert_called_once()
