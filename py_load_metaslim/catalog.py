"""Read-side operations over an in-memory list of studies.

Filtering, search, sorting, selection for side-by-side comparison, summary
statistics and the flattened data series that back the dashboard charts.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List

from py_load_metaslim.models.study import DoseObservation, StudyRecord

T2D_FILL = "#F8763F"
NON_T2D_FILL = "#2B98BA"


class PopulationFilter(str, Enum):
    ALL = "all"
    NON_T2D = "nonT2D"
    T2D = "t2d"
    CHINESE = "chinese"


class StudySortKey(str, Enum):
    CREATED_AT = "created_at"
    DRUG_NAME = "drug_name"
    TRIAL_NAME = "trial_name"
    DURATION_WEEKS = "duration_weeks"
    MAX_WEIGHT_LOSS = "max_weight_loss"


class DoseMetric(str, Enum):
    WEIGHT_LOSS = "weight_loss_percent"
    NAUSEA = "nausea_percent"
    VOMITING = "vomiting_percent"
    DIARRHEA = "diarrhea_percent"
    CONSTIPATION = "constipation_percent"


def filter_by_population(
    studies: Iterable[StudyRecord], population: PopulationFilter = PopulationFilter.ALL
) -> List[StudyRecord]:
    population = PopulationFilter(population)
    if population is PopulationFilter.T2D:
        return [s for s in studies if s.has_t2d]
    if population is PopulationFilter.NON_T2D:
        return [s for s in studies if not s.has_t2d]
    if population is PopulationFilter.CHINESE:
        return [s for s in studies if s.is_chinese_cohort]
    return list(studies)


def search_studies(studies: Iterable[StudyRecord], query: str | None) -> List[StudyRecord]:
    """Case-insensitive substring search over the descriptive text fields."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(studies)

    def haystack(study: StudyRecord) -> str:
        return " ".join(
            [
                study.drug_name,
                study.drug_class,
                study.company,
                study.trial_name,
                study.summary or "",
            ]
        ).lower()

    return [s for s in studies if needle in haystack(s)]


def _sort_value(study: StudyRecord, key: StudySortKey) -> Any:
    if key is StudySortKey.MAX_WEIGHT_LOSS:
        return study.max_weight_loss()
    if key in (StudySortKey.DRUG_NAME, StudySortKey.TRIAL_NAME):
        return getattr(study, key.value).strip().lower()
    return getattr(study, key.value) or 0


def sort_studies(
    studies: Iterable[StudyRecord],
    key: StudySortKey = StudySortKey.CREATED_AT,
    descending: bool = True,
) -> List[StudyRecord]:
    key = StudySortKey(key)
    return sorted(studies, key=lambda s: _sort_value(s, key), reverse=descending)


@dataclass(frozen=True)
class DoseSort:
    """Sort state of a comparison card's dose table.

    Clicking the same column cycles ascending, descending and unsorted;
    clicking another column starts again at ascending.
    """

    metric: DoseMetric | None = None
    descending: bool = False

    def toggle(self, metric: DoseMetric) -> "DoseSort":
        metric = DoseMetric(metric)
        if self.metric is not metric:
            return DoseSort(metric, descending=False)
        if not self.descending:
            return DoseSort(metric, descending=True)
        return DoseSort()


def sort_doses(doses: Sequence[DoseObservation], sort: DoseSort) -> List[DoseObservation]:
    if sort.metric is None:
        return list(doses)
    return sorted(
        doses,
        key=lambda d: getattr(d, sort.metric.value) or 0,
        reverse=sort.descending,
    )


def toggle_selection(selected_ids: Sequence[str], study_id: str) -> List[str]:
    if study_id in selected_ids:
        return [i for i in selected_ids if i != study_id]
    return list(selected_ids) + [study_id]


def selected_studies(
    studies: Iterable[StudyRecord], selected_ids: Sequence[str]
) -> List[StudyRecord]:
    """The selected studies, in the order of the full study list."""
    wanted = set(selected_ids)
    return [s for s in studies if s.study_id in wanted]


def summary_stats(studies: Sequence[StudyRecord]) -> Dict[str, Any]:
    return {
        "total_studies": len(studies),
        "drug_classes": len({s.drug_class for s in studies}),
        "max_weight_loss": max((s.max_weight_loss() for s in studies), default=0.0),
    }


def safety_chart_data(studies: Iterable[StudyRecord]) -> List[Dict[str, Any]]:
    """One point per dose arm with a reported weight loss."""
    return [
        {
            "name": study.drug_name,
            "dose": dose.dose,
            "trial": study.trial_name,
            "weight_loss": dose.weight_loss_percent,
            "nausea": dose.nausea_percent,
            "vomiting": dose.vomiting_percent,
            "diarrhea": dose.diarrhea_percent,
            "constipation": dose.constipation_percent,
            "has_t2d": study.has_t2d,
            "fill": T2D_FILL if study.has_t2d else NON_T2D_FILL,
        }
        for study in studies
        for dose in study.doses
        if dose.weight_loss_percent > 0
    ]


def duration_efficacy_data(studies: Iterable[StudyRecord]) -> List[Dict[str, Any]]:
    """Scatter points of trial duration (x) against weight loss (y)."""
    return [
        {
            "name": study.drug_name,
            "dose": dose.dose,
            "trial": study.trial_name,
            "x": study.duration_weeks,
            "y": dose.weight_loss_percent,
            "has_t2d": study.has_t2d,
        }
        for study in studies
        for dose in study.doses
        if dose.weight_loss_percent > 0
    ]
