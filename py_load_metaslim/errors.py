"""Exception types raised by py-load-metaslim."""


class MetaslimError(Exception):
    """Base class for all errors raised by this package."""


class DocumentParseError(MetaslimError):
    """The source document could not be converted to text."""


class ExtractionServiceError(MetaslimError):
    """The AI extraction service failed or returned an unusable reply."""


class NoCohortsExtractedError(MetaslimError):
    """The AI service returned zero cohorts for a source file."""

    def __init__(self, message: str = "The AI service did not extract any cohorts from the document."):
        super().__init__(message)


class NonViableCohortsError(MetaslimError):
    """Every extracted cohort was filtered out or already known."""

    def __init__(
        self,
        skipped: int = 0,
        filtered_out: int = 0,
        message: str = "All extracted cohorts were non-Phase 1-3 studies or duplicates.",
    ):
        super().__init__(message)
        self.skipped = skipped
        self.filtered_out = filtered_out


class StudyNotFoundError(MetaslimError):
    """No stored study has the requested id."""


class MissingRequiredFieldError(MetaslimError):
    """A manually entered study lacks a drug name or trial name."""


class StorePermissionError(MetaslimError):
    """The persistent store rejected an operation for lack of privileges."""
