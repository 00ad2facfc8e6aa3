"""Sequential batch driver for document uploads.

Each file moves through idle, processing (parsing, then extracting, then
saving) and ends in success or error. Files run one after another and a
failure only marks its own file.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List

from py_load_metaslim.errors import NoCohortsExtractedError, StorePermissionError
from py_load_metaslim.extractor.gemini import GeminiExtractionClient
from py_load_metaslim.extractor.pdf import PdfTextExtractor
from py_load_metaslim.loaders.base import BaseStore
from py_load_metaslim.models.study import StudyRecord
from py_load_metaslim.pipeline.ingest import IngestOutcome, ingest

logger = logging.getLogger(__name__)

PDF_SUFFIXES = frozenset({".pdf"})
IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".webp"})

PERMISSION_SIGNATURES = ("permission-denied", "permission denied")
PERMISSION_MESSAGE = "Database permission denied."


class FileStatus(str, Enum):
    """Lifecycle state of one file in a batch."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class FileStep(str, Enum):
    """Sub-step of a file that is being processed."""

    PARSING = "parsing"
    EXTRACTING = "extracting"
    SAVING = "saving"


@dataclass
class FileProgress:
    """Per-file state of a batch upload."""

    file_name: str
    status: FileStatus = FileStatus.IDLE
    step: FileStep | None = None
    message: str = "Pending"
    outcome: IngestOutcome | None = None

    @property
    def done(self) -> bool:
        return self.status in (FileStatus.SUCCESS, FileStatus.ERROR)


ProgressCallback = Callable[[int, FileProgress], None]


def select_pdf_files(paths: Iterable[str | Path]) -> List[Path]:
    """Keeps only the PDF documents out of a mixed selection of files."""
    return [Path(p) for p in paths if Path(p).suffix.lower() in PDF_SUFFIXES]


def describe_error(error: BaseException) -> str:
    """Turns an exception into the message shown for a failed file.

    Permission failures from the store get a clarified message; everything
    else keeps the upstream text.
    """
    message = str(error)
    if isinstance(error, StorePermissionError) or any(
        signature in message.lower() for signature in PERMISSION_SIGNATURES
    ):
        return PERMISSION_MESSAGE
    return message or "An unknown error occurred."


class BatchIngestor:
    """Runs the extraction and ingestion pipeline over a list of files.

    Files are handled strictly one after another. The snapshot of known
    studies used for duplicate detection is read once at the start of a batch,
    so cohorts added from an earlier file of the same batch are not seen as
    known while later files are deduplicated.
    """

    def __init__(
        self,
        store: BaseStore,
        ai_client: GeminiExtractionClient,
        pdf_extractor: PdfTextExtractor | None = None,
        on_update: ProgressCallback | None = None,
    ):
        self.store = store
        self.ai_client = ai_client
        self.pdf_extractor = pdf_extractor or PdfTextExtractor()
        self.on_update = on_update

    def _update(
        self,
        index: int,
        progress: FileProgress,
        status: FileStatus,
        message: str,
        step: FileStep | None = None,
    ) -> None:
        progress.status = status
        progress.step = step
        progress.message = message
        logger.info("[%s] %s: %s", progress.file_name, status.value, message)
        if self.on_update:
            self.on_update(index, progress)

    async def _process_file(
        self,
        index: int,
        path: Path,
        progress: FileProgress,
        known_records: Sequence[StudyRecord],
    ) -> None:
        suffix = path.suffix.lower()
        if suffix in PDF_SUFFIXES:
            self._update(index, progress, FileStatus.PROCESSING, "Parsing PDF...", FileStep.PARSING)
            text = await self.pdf_extractor.aextract_text(path)
            self._update(
                index, progress, FileStatus.PROCESSING, "AI is extracting data...", FileStep.EXTRACTING
            )
            candidates = await self.ai_client.analyze_text(text)
        elif suffix in IMAGE_SUFFIXES:
            self._update(
                index, progress, FileStatus.PROCESSING, "AI is extracting data...", FileStep.EXTRACTING
            )
            candidates = await self.ai_client.analyze_image(path)
        else:
            raise ValueError(f"Unsupported file type: {path.suffix or path.name}")

        if not candidates:
            raise NoCohortsExtractedError()

        self._update(
            index,
            progress,
            FileStatus.PROCESSING,
            f"Found {len(candidates)} cohort(s), filtering and saving...",
            FileStep.SAVING,
        )
        outcome = ingest(candidates, known_records, self.store)
        progress.outcome = outcome
        self._update(index, progress, FileStatus.SUCCESS, outcome.message)

    async def run(self, paths: Iterable[str | Path]) -> List[FileProgress]:
        """Processes `paths` in order and returns the final state of every file.

        A failing file is marked as an error and processing moves on to the
        next one; nothing is retried.
        """
        files = [Path(p) for p in paths]
        progress = [FileProgress(file_name=f.name) for f in files]
        if not files:
            return progress

        known_records = self.store.list_studies()
        logger.info(
            "Starting batch of %d file(s) against %d known studies",
            len(files),
            len(known_records),
        )
        for index, (path, item) in enumerate(zip(files, progress)):
            try:
                await self._process_file(index, path, item, known_records)
            except Exception as e:
                logger.error("Processing %s failed: %s", path.name, e, exc_info=True)
                self._update(index, item, FileStatus.ERROR, describe_error(e))
        return progress
