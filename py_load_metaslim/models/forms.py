"""Normalization of manual-entry form input into typed study records.

Form controls deliver text for number inputs and on/off markers for
checkboxes. Everything is converted once, on submit, so the rest of the
package only ever sees typed values.
"""

from typing import Any, Dict, List, Mapping

from py_load_metaslim.models.study import (
    CandidateRecord,
    DoseObservation,
    coerce_flag,
)

# Wire name -> python field name
CHECKBOX_FIELDS = {"hasT2D": "has_t2d", "isChineseCohort": "is_chinese_cohort"}


def empty_dose() -> Dict[str, Any]:
    return DoseObservation().model_dump(by_alias=True)


def blank_form() -> Dict[str, Any]:
    """Returns the initial state of a manual-entry form with one empty dose row."""
    form = CandidateRecord().model_dump(by_alias=True)
    form["summary"] = ""
    form["doses"] = [empty_dose()]
    return form


def add_dose(form: Mapping[str, Any]) -> Dict[str, Any]:
    updated = dict(form)
    updated["doses"] = list(form.get("doses") or []) + [empty_dose()]
    return updated


def remove_dose(form: Mapping[str, Any], index: int) -> Dict[str, Any]:
    updated = dict(form)
    updated["doses"] = [
        dose for i, dose in enumerate(form.get("doses") or []) if i != index
    ]
    return updated


def normalize_form(raw: Mapping[str, Any]) -> CandidateRecord:
    """Converts submitted form values into a CandidateRecord.

    Unchecked checkboxes are simply absent from a submission, so a missing
    flag means False. Number fields that are blank or unparsable become 0.
    """
    values: Dict[str, Any] = dict(raw)
    for alias, name in CHECKBOX_FIELDS.items():
        raw_flag = values.pop(name, None)
        values[alias] = coerce_flag(values.get(alias, raw_flag))
    doses: List[Any] = values.get("doses") or []
    values["doses"] = [dict(d) for d in doses if isinstance(d, Mapping)]
    summary = values.get("summary")
    values["summary"] = summary.strip() if isinstance(summary, str) and summary.strip() else None
    return CandidateRecord.model_validate(values)
