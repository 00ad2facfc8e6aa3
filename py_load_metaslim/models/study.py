import math
from typing import Any, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PHASE_DIGITS = ("1", "2", "3")

TRUE_FLAGS = {"true", "on", "1", "yes", "y", "checked"}

NaturalKey = Tuple[str, str, bool, bool]


def canonicalize_drug_name(name: str) -> str:
    """Upper-cases the first character and lower-cases the rest.

    A first character whose upper-case form expands to several characters
    (e.g. 'ß') is kept as is so the result is stable under re-application.
    """
    if not name:
        return ""
    head = name[:1].upper()
    if len(head) != 1:
        head = name[:1]
    return head + name[1:].lower()


def coerce_number(value: Any) -> float:
    """Coerces loosely-typed numeric input to a non-negative finite float.

    Empty, missing and non-numeric values become 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def coerce_flag(value: Any) -> bool:
    """Interprets checkbox-style input as a boolean."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in TRUE_FLAGS
    if isinstance(value, (int, float)):
        return value != 0
    return False


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _norm(value: str) -> str:
    return value.strip().lower()


class DoseObservation(BaseModel):
    """Efficacy and tolerability figures for one dose arm of a cohort.

    All percentages default to 0, which stands for "not reported or none
    observed".
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dose: str = Field(default="", description="Dose label, e.g. '2.4mg'.")
    weight_loss_percent: float = Field(default=0.0, description="Mean body-weight reduction in percent.")
    nausea_percent: float = Field(default=0.0, description="Incidence of nausea in percent.")
    vomiting_percent: float = Field(default=0.0, description="Incidence of vomiting in percent.")
    diarrhea_percent: float = Field(default=0.0, description="Incidence of diarrhea in percent.")
    constipation_percent: float = Field(default=0.0, description="Incidence of constipation in percent.")

    @field_validator("dose", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return coerce_text(value)

    @field_validator(
        "weight_loss_percent",
        "nausea_percent",
        "vomiting_percent",
        "diarrhea_percent",
        "constipation_percent",
        mode="before",
    )
    @classmethod
    def _number(cls, value: Any) -> float:
        return coerce_number(value)


class CandidateRecord(BaseModel):
    """A study cohort as returned by the AI extraction service.

    Mirrors StudyRecord without the store-assigned id and creation timestamp.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    drug_name: str = Field(default="", description="Generic drug name, canonicalized.")
    drug_class: str = Field(default="", description="Drug class, e.g. 'GLP-1 RA'.")
    company: str = Field(default="", description="Sponsoring company.")
    trial_name: str = Field(default="", description="Trial name, e.g. 'SURMOUNT-1'.")
    phase: str = Field(default="", description="'Phase 1', 'Phase 2', 'Phase 3' or '' if unknown.")
    has_t2d: bool = Field(default=False, alias="hasT2D")
    is_chinese_cohort: bool = False
    duration_weeks: int = Field(default=0, description="Trial duration in weeks.")
    summary: str | None = None
    doses: List[DoseObservation] = Field(default_factory=list)

    @field_validator("drug_name", mode="before")
    @classmethod
    def _drug_name(cls, value: Any) -> str:
        return canonicalize_drug_name(coerce_text(value))

    @field_validator("drug_class", "company", "trial_name", "phase", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return coerce_text(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> str | None:
        return None if value is None else coerce_text(value)

    @field_validator("has_t2d", "is_chinese_cohort", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return coerce_flag(value)

    @field_validator("duration_weeks", mode="before")
    @classmethod
    def _weeks(cls, value: Any) -> int:
        return int(coerce_number(value))

    @field_validator("doses", mode="before")
    @classmethod
    def _doses(cls, value: Any) -> list:
        # Entries that are not objects cannot describe a dose arm.
        if not isinstance(value, list):
            return []
        return [d for d in value if isinstance(d, (dict, DoseObservation))]

    def is_well_formed(self) -> bool:
        """True when the record names a drug and a trial and has at least one dose."""
        return bool(self.drug_name) and bool(self.trial_name) and len(self.doses) > 0

    def has_classifiable_phase(self) -> bool:
        """An empty phase is accepted; otherwise it must mention phase 1, 2 or 3."""
        if not self.phase:
            return True
        return any(digit in self.phase for digit in PHASE_DIGITS)

    def natural_key(self) -> NaturalKey:
        return (
            _norm(self.drug_name),
            _norm(self.trial_name),
            self.has_t2d,
            self.is_chinese_cohort,
        )

    def same_cohort(self, other: "CandidateRecord") -> bool:
        return self.natural_key() == other.natural_key()

    def max_weight_loss(self) -> float:
        return max((d.weight_loss_percent for d in self.doses), default=0.0)

    def to_document(self) -> dict[str, Any]:
        """Serializes the descriptive fields using the wire (camelCase) names."""
        return self.model_dump(
            by_alias=True, exclude={"study_id", "created_at"}, exclude_none=False
        )


class StudyRecord(CandidateRecord):
    """A persisted cohort-level trial observation."""

    # Renamed from id to avoid shadowing a Python builtin
    study_id: str | None = Field(
        default=None, alias="id", description="Opaque store-assigned identifier."
    )
    created_at: int | None = Field(
        default=None,
        description="Epoch milliseconds at which the store persisted the record.",
    )

    @classmethod
    def from_candidate(
        cls, candidate: CandidateRecord, study_id: str, created_at: int
    ) -> "StudyRecord":
        return cls(**candidate.model_dump(), study_id=study_id, created_at=created_at)
