from statement_ingest.database.repositories.extraction_failure_repository import (
    ExtractionFailureRepository,
)
from statement_ingest.database.repositories.llm_settings_repository import LlmSettingsRepository
from statement_ingest.database.repositories.upload_repository import UploadRepository
from statement_ingest.extraction.dispatcher import ExtractionDispatcher
from statement_ingest.ledger.data_writer import DataWriter
from statement_ingest.logging.logger import Log
from statement_ingest.matching.account_matcher import AccountMatcher
from statement_ingest.matching.entity_matcher import EntityMatcher
from statement_ingest.pipeline.exceptions import LinkError
from statement_ingest.pipeline.pipeline import PipelineContext, PipelineStep
from statement_ingest.preprocessing.preprocessor import FilePreprocessor
from statement_ingest.storage.file_storage import FileStorage

# Failures are written to the audit log from this attempt number on.
FAILURE_LOG_MIN_ATTEMPT = 2


class BeginProcessingStep(PipelineStep):
    def __init__(
        self, upload_repo: UploadRepository, llm_settings_repo: LlmSettingsRepository
    ) -> None:
        self._upload_repo = upload_repo
        self._llm_settings_repo = llm_settings_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        settings = {"preset": context.preset} if context.preset else None
        context.upload = self._upload_repo.begin_processing(
            context.user_id, context.upload_id, settings
        )
        context.llm_mode = self._llm_settings_repo.get_mode(context.user_id)
        Log.info(
            f"Upload {context.upload_id} processing, attempt {context.upload.process_count} "
            f"(mode {context.llm_mode})"
        )
        return context


class LoadFileStep(PipelineStep):
    def __init__(self, storage: FileStorage) -> None:
        self._storage = storage

    def run(self, context: PipelineContext) -> PipelineContext:
        upload = context.require_upload()
        context.raw_bytes = self._storage.load(upload.file_path)
        Log.info(f"Loaded {len(context.raw_bytes)} bytes for upload {context.upload_id}")
        return context


class PreprocessStep(PipelineStep):
    def __init__(self, preprocessor: FilePreprocessor) -> None:
        self._preprocessor = preprocessor

    def run(self, context: PipelineContext) -> PipelineContext:
        upload = context.require_upload()
        context.prepared = self._preprocessor.prepare(context.raw_bytes, upload.file_type)
        Log.info(
            f"Prepared upload {context.upload_id} as {context.prepared.content_type} "
            f"({upload.file_type})"
        )
        return context


class ExtractStep(PipelineStep):
    def __init__(self, dispatcher: ExtractionDispatcher) -> None:
        self._dispatcher = dispatcher

    def run(self, context: PipelineContext) -> PipelineContext:
        upload = context.require_upload()
        if context.prepared is None:
            raise ValueError("PipelineContext.prepared must be set before extraction")
        preset = context.preset or (upload.processing_settings or {}).get("preset")
        context.dispatch = self._dispatcher.extract(
            context.prepared,
            file_type=upload.file_type,
            filename=upload.filename,
            mode=context.llm_mode,
            preset=preset,
        )
        has_data = context.dispatch.extraction.has_data
        context.parse_status = "completed" if has_data else "partial"
        return context


class ResolveEntityStep(PipelineStep):
    def __init__(self, entity_matcher: EntityMatcher) -> None:
        self._entity_matcher = entity_matcher

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.dispatch is None or not context.dispatch.extraction.has_data:
            return context
        owner_name = context.dispatch.extraction.account_info.owner_name
        try:
            context.entity_match = self._entity_matcher.resolve(context.user_id, owner_name)
        except Exception as exc:
            _record_link_error(context, LinkError(f"Entity matching failed: {exc}"))
        return context


class LinkAccountStep(PipelineStep):
    """Picks the account for the upload's rows.

    Reuses the previous link when the upload had been confirmed and that
    account is still active.
    """

    def __init__(self, account_matcher: AccountMatcher) -> None:
        self._account_matcher = account_matcher

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.dispatch is None or not context.dispatch.extraction.has_data:
            return context
        if context.link_error:
            return context
        upload = context.require_upload()
        previous = upload.account_id if upload.confirmed_at is not None else None
        entity = context.entity_match.entity if context.entity_match else None
        try:
            context.link = self._account_matcher.resolve(
                context.user_id,
                context.dispatch.extraction.account_info,
                filename=upload.filename,
                previous_account_id=previous,
                entity_id=entity.id if entity else None,
            )
        except Exception as exc:
            _record_link_error(context, LinkError(f"Account linking failed: {exc}"))
        return context


class WriteDataStep(PipelineStep):
    def __init__(self, writer: DataWriter) -> None:
        self._writer = writer

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.dispatch is None or context.link is None or context.link_error:
            return context
        try:
            context.written = self._writer.write(
                context.user_id,
                context.upload_id,
                context.link.account.id,
                context.dispatch.extraction,
            )
        except Exception as exc:
            _record_link_error(context, LinkError(f"Writing data failed: {exc}"))
        return context


class SaveExtractionStep(PipelineStep):
    def __init__(self, upload_repo: UploadRepository) -> None:
        self._upload_repo = upload_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.dispatch is None:
            raise ValueError("PipelineContext.dispatch must be set before saving")
        extraction = context.dispatch.extraction
        payload = extraction.to_payload()
        account_id = context.link.account.id if context.link and context.written else None
        self._upload_repo.save_extraction(
            context.user_id,
            context.upload_id,
            parse_status=context.parse_status,
            extracted_data=payload,
            raw_llm_response=context.dispatch.raw_response,
            detected_account_info=payload["account_info"],
            account_id=account_id,
            statement_start_date=extraction.statement_start_date,
            statement_end_date=extraction.statement_end_date,
            parse_error=context.link_error,
        )
        Log.info(f"Upload {context.upload_id} saved as {context.parse_status}")
        if context.stale_rows:
            _warn_stale_rows(context)
        return context


class MarkFailedStep(PipelineStep):
    """Records a failed run on the upload and, for repeat failures, in the audit log."""

    def __init__(
        self,
        upload_repo: UploadRepository,
        failure_repo: ExtractionFailureRepository,
    ) -> None:
        self._upload_repo = upload_repo
        self._failure_repo = failure_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        upload = context.require_upload()
        self._upload_repo.mark_failed(context.user_id, context.upload_id, context.error_message)
        context.parse_status = "failed"
        Log.error(f"Upload {context.upload_id} marked as failed: {context.error_message}")
        if context.stale_rows:
            _warn_stale_rows(context)
        if upload.process_count >= FAILURE_LOG_MIN_ATTEMPT:
            self._log_failure(context)
        return context

    def _log_failure(self, context: PipelineContext) -> None:
        upload = context.require_upload()
        try:
            failure = self._failure_repo.create(
                context.user_id,
                context.upload_id,
                filename=upload.filename,
                file_type=upload.file_type,
                file_path=upload.file_path,
                file_size_bytes=upload.file_size_bytes,
                attempt_number=upload.process_count,
                error_message=context.error_message,
                llm_mode=context.llm_mode or "unknown",
            )
        except Exception as exc:
            Log.error(f"Failed to record extraction failure for upload {context.upload_id}: {exc}")
            return
        Log.warning(
            f"Extraction failure {failure.id} logged for upload {context.upload_id} "
            f"(attempt {upload.process_count})"
        )


def _record_link_error(context: PipelineContext, error: LinkError) -> None:
    context.link_error = str(error)
    Log.error(f"Upload {context.upload_id}: {error}")


def _warn_stale_rows(context: PipelineContext) -> None:
    Log.warning(
        f"Upload {context.upload_id} was confirmed before this run but nothing was written; "
        f"rows from the previous write remain until the next successful write"
    )
