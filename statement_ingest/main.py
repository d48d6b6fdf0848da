"""Operator command line for the statement ingestion pipeline.

Each subcommand runs one operation for one user and prints the outcome as JSON.
"""

import argparse
import dataclasses
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from statement_ingest.config.settings import Settings
from statement_ingest.database.connection import apply_schema, close_pool, init_pool
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.logging.logger import Log
from statement_ingest.pipeline.results import OperationResult
from statement_ingest.service.upload_service import UploadService, build_upload_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statement-ingest",
        description="Ingest, reconcile and quality-check financial statements",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables from the bundled schema")

    def with_user(name: str, help_text: str) -> argparse.ArgumentParser:
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--user", required=True, help="Acting user id (UUID)")
        return command

    upload = with_user("upload", "Store a statement file and open an upload")
    upload.add_argument("path", type=Path)
    upload.add_argument("--mime", default=None, help="Declared MIME type (guessed from the name if omitted)")

    process = with_user("process", "Extract, link and write an upload")
    process.add_argument("upload_id")
    process.add_argument("--preset", default=None, choices=["fast", "balanced", "quality", "max_quality"])

    preview = with_user("preview", "Show extraction and proposed account mapping")
    preview.add_argument("upload_id")

    confirm = with_user("confirm", "Write a processed upload's stored extraction to the ledger")
    confirm.add_argument("upload_id")
    confirm.add_argument("--account", default=None, help="Target account id (matched or created if omitted)")

    qc = with_user("qc", "Run quality checks (auto-fixes once on failure)")
    qc.add_argument("upload_id")

    fix = with_user("fix", "Manually trigger a fix pass")
    fix.add_argument("upload_id")
    fix.add_argument("--phase", type=int, default=1)

    revert = with_user("revert", "Remove rows written for a confirmed upload")
    revert.add_argument("upload_id")

    resolve_failure = with_user("resolve-failure", "Mark an extraction failure resolved")
    resolve_failure.add_argument("failure_id")
    resolve_failure.add_argument("--notes", required=True)

    resolve_check = with_user("resolve-check", "Close a failed quality check by hand")
    resolve_check.add_argument("check_id")
    resolve_check.add_argument("--notes", required=True)

    failures = with_user("failures", "List extraction failures")
    failures.add_argument("--all", action="store_true", help="Include resolved failures")

    set_mode = with_user("set-mode", "Set the user's extraction mode")
    set_mode.add_argument("mode", choices=["api", "cli", "example"])

    return parser


def dispatch(args: argparse.Namespace, service: UploadService) -> OperationResult[Any]:
    user = args.user
    if args.command == "upload":
        mime = args.mime or mimetypes.guess_type(args.path.name)[0] or "application/octet-stream"
        return service.create_upload(user, args.path.read_bytes(), mime, args.path.name)
    if args.command == "process":
        return service.trigger_processing(user, args.upload_id, args.preset)
    if args.command == "preview":
        return service.get_preview(user, args.upload_id)
    if args.command == "confirm":
        return service.confirm_upload(user, args.upload_id, args.account)
    if args.command == "qc":
        return service.run_quality_check(user, args.upload_id)
    if args.command == "fix":
        return service.trigger_fix(user, args.upload_id, args.phase)
    if args.command == "revert":
        return service.revert(user, args.upload_id)
    if args.command == "resolve-failure":
        return service.resolve_failure(user, args.failure_id, args.notes)
    if args.command == "resolve-check":
        return service.resolve_quality_check(user, args.check_id, args.notes)
    if args.command == "failures":
        return service.list_failures(user, include_resolved=args.all)
    raise ValueError(f"Unknown command {args.command}")


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    return value


def main(argv: list[str] | None = None) -> int:
    """Entry point: parse args -> open pool -> run one operation -> print JSON."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    try:
        if args.command == "init-db":
            apply_schema()
            Log.info("Schema applied")
            return 0
        if args.command == "set-mode":
            LlmSettingsRepository(settings.extraction_mode).set_mode(args.user, args.mode)
            print(json.dumps({"ok": True, "mode": args.mode}))
            return 0
        result = dispatch(args, build_upload_service(settings))
        print(json.dumps(_to_jsonable(result), default=str, indent=2))
        return 0 if result.ok else 1
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
