"""Manual creation and editing of studies."""

import logging
from collections.abc import Mapping
from typing import Any

from py_load_metaslim.errors import MissingRequiredFieldError
from py_load_metaslim.loaders.base import BaseStore
from py_load_metaslim.models.forms import normalize_form
from py_load_metaslim.models.study import CandidateRecord, StudyRecord

logger = logging.getLogger(__name__)


def _require_names(candidate: CandidateRecord) -> None:
    if not candidate.drug_name.strip() or not candidate.trial_name.strip():
        raise MissingRequiredFieldError("Please provide a drug name and a trial name.")


def add_manual_study(store: BaseStore, form: Mapping[str, Any]) -> StudyRecord:
    """Stores a study typed in by hand.

    Unlike AI ingestion there is no phase or duplicate filter, and the dose
    list may still be empty.
    """
    candidate = normalize_form(form)
    _require_names(candidate)
    record = store.create(candidate)
    logger.info("Added study %s (%s / %s)", record.study_id, record.drug_name, record.trial_name)
    return record


def edit_study(store: BaseStore, study_id: str, form: Mapping[str, Any]) -> StudyRecord:
    """Replaces every descriptive field of a stored study with the form values.

    The id and creation timestamp of the study are kept.
    """
    candidate = normalize_form(form)
    _require_names(candidate)
    fields = candidate.model_dump(by_alias=True)
    record = store.update(study_id, fields)
    logger.info("Updated study %s", study_id)
    return record
