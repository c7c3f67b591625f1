"""Document processing pipeline.

Sequences the stages of a single upload:

    RECEIVED -> STORED -> TEXT_EXTRACTED -> ANALYZED -> PERSISTED

Any stage can end the run in FAILED, surfaced to the caller as a
``StageFailure`` naming the stage. The one degraded path is persistence:
when the document and its transactions cannot be written together, the
document is written alone and the run still succeeds.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from uuid import uuid4

from finscan.config import settings
from finscan.db.sqlite import Database, db
from finscan.models import (
    AnalysisPayload,
    AnalysisResult,
    Document,
    DocumentStatus,
    DocumentType,
    ProcessingResult,
    TransactionType,
    UploadRequest,
)
from finscan.ocr.engine import TesseractEngine
from finscan.ocr.extraction import extract_text_from_file
from finscan.parsers.analyzer import analyze_financial_document
from finscan.parsers.validation import log_validation_result, validate_candidates

logger = logging.getLogger(__name__)

Analyzer = Callable[[str, DocumentType], Awaitable[AnalysisResult]]


class ProcessingStage(str, Enum):
    """Stages that can fail a run."""

    STORE = "store"
    EXTRACT = "extract"
    ANALYZE = "analyze"
    PERSIST = "persist"


class PipelineState(str, Enum):
    """Progress of a single run."""

    RECEIVED = "RECEIVED"
    STORED = "STORED"
    TEXT_EXTRACTED = "TEXT_EXTRACTED"
    ANALYZED = "ANALYZED"
    PERSISTED = "PERSISTED"
    FAILED = "FAILED"


class StageFailure(Exception):
    """A stage fault with no safe fallback. The run is aborted."""

    def __init__(self, stage: ProcessingStage, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage.value}: {detail}")


@dataclass
class PipelineRun:
    """Mutable state of one run."""

    upload: UploadRequest
    document: Document
    state: PipelineState = PipelineState.RECEIVED
    warnings: list[str] = field(default_factory=list)

    def advance(self, state: PipelineState) -> None:
        logger.info(f"[{self.upload.file_name}] {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, stage: ProcessingStage, detail: str, error: Exception | None = None) -> StageFailure:
        if error is not None:
            logger.error(f"[{self.upload.file_name}] {stage.value} failed: {detail}", exc_info=error)
        else:
            logger.error(f"[{self.upload.file_name}] {stage.value} failed: {detail}")
        self.state = PipelineState.FAILED
        if self.document.status is not DocumentStatus.ERROR:
            self.document.transition_to(DocumentStatus.ERROR)
        return StageFailure(stage, detail)


class DocumentPipeline:
    """Runs uploads through storage, OCR, LLM analysis, validation and persistence."""

    def __init__(
        self,
        database: Database | None = None,
        uploads_dir: Path | None = None,
        engine_factory: Callable[[], TesseractEngine] = TesseractEngine,
        analyzer: Analyzer = analyze_financial_document,
    ):
        self.database = database or db
        self.uploads_dir = uploads_dir or settings.uploads_path
        self.engine_factory = engine_factory
        self.analyzer = analyzer

    async def process(self, upload: UploadRequest) -> ProcessingResult:
        """
        Process one uploaded document end to end.

        Args:
            upload: The validated upload

        Returns:
            ProcessingResult with the stored document; ``degraded`` is set when
            its transactions could not be stored

        Raises:
            StageFailure: If a stage fails without a safe fallback
        """
        run = PipelineRun(
            upload=upload,
            document=Document(
                file_name=upload.file_name,
                file_type=upload.mime_type,
                file_size=upload.file_size,
                document_type=upload.document_type,
            ),
        )
        logger.info(f"Starting processing of {upload.file_name} ({upload.mime_type}, {upload.file_size} bytes)")

        file_path = self._store(run)
        text = await self._extract(run, file_path)
        analysis = await self._analyze(run, text)
        return await self._persist(run, analysis)

    def _store(self, run: PipelineRun) -> Path:
        suffix = Path(run.upload.file_name).suffix
        file_path = self.uploads_dir / f"{uuid4().hex}{suffix}"
        try:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(run.upload.contents)
        except OSError as e:
            raise run.fail(ProcessingStage.STORE, f"Failed to save file: {e}", e) from e

        run.document.transition_to(DocumentStatus.PROCESSING)
        run.advance(PipelineState.STORED)
        return file_path

    async def _extract(self, run: PipelineRun, file_path: Path) -> str:
        try:
            text = await asyncio.to_thread(
                extract_text_from_file, file_path, run.upload.mime_type, self.engine_factory
            )
        except Exception as e:
            raise run.fail(ProcessingStage.EXTRACT, f"Failed to extract text from document: {e}", e) from e

        if not text.strip():
            run.warnings.append("no text could be extracted from the document")
        run.advance(PipelineState.TEXT_EXTRACTED)
        return text

    async def _analyze(self, run: PipelineRun, text: str) -> AnalysisResult:
        try:
            analysis = await self.analyzer(text, run.upload.document_type)
        except Exception as e:
            raise run.fail(ProcessingStage.ANALYZE, f"Failed to analyze document: {e}", e) from e

        run.advance(PipelineState.ANALYZED)
        return analysis

    async def _persist(self, run: PipelineRun, analysis: AnalysisResult) -> ProcessingResult:
        try:
            user = await asyncio.to_thread(
                self.database.get_or_create_user, settings.default_user_email, settings.default_user_name
            )
            category = await asyncio.to_thread(
                self.database.get_or_create_category,
                user.id,
                settings.default_category_name,
                TransactionType.EXPENSE,
            )
        except Exception as e:
            raise run.fail(ProcessingStage.PERSIST, f"Failed to get or create defaults: {e}", e) from e

        validation = validate_candidates(analysis.transactions, category.id, user.id)
        log_validation_result(validation, run.upload.file_name)
        run.warnings.extend(validation.warnings)

        record = run.document.model_copy(update={"user_id": user.id})
        record.transition_to(DocumentStatus.COMPLETED)

        degraded = False
        try:
            stored = await asyncio.to_thread(self.database.create_document, record, validation.accepted)
            logger.info(f"Document and {len(stored.transactions)} transactions saved successfully")
        except Exception as e:
            logger.error(f"Error saving document with transactions: {e}")
            logger.info("Attempting to save document without transactions...")
            try:
                stored = await asyncio.to_thread(self.database.create_document, record)
            except Exception as fallback_error:
                raise run.fail(
                    ProcessingStage.PERSIST,
                    f"Failed to save document and transactions to database: {fallback_error}",
                    fallback_error,
                ) from fallback_error
            degraded = True
            run.warnings.append(f"transactions could not be saved: {e}")
            logger.warning("Document saved without transactions")

        run.document = stored
        run.advance(PipelineState.PERSISTED)

        return ProcessingResult(
            document=stored,
            analysis=AnalysisPayload(summary=analysis.summary, transactions=stored.transactions),
            warnings=run.warnings,
            degraded=degraded,
            placeholder_used=validation.placeholder_used and not degraded,
        )


# Global pipeline instance
pipeline = DocumentPipeline()
