"""Accept-time decision logic for AI-extracted study cohorts.

For one source file, every candidate goes through the same checks in the
order the AI service returned them:

1. structural validation (drug name, trial name, at least one dose);
   malformed candidates are dropped without being counted,
2. phase filter: a non-empty phase must mention phase 1, 2 or 3,
3. duplicate filter against the snapshot of known records,
4. persistence of the survivors, one at a time and in order.

Candidates of the same response are only compared with the snapshot, never
with each other.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import List

from py_load_metaslim.errors import NoCohortsExtractedError, NonViableCohortsError
from py_load_metaslim.loaders.base import BaseStore
from py_load_metaslim.models.study import CandidateRecord, StudyRecord

logger = logging.getLogger(__name__)


@dataclass
class IngestOutcome:
    """Counts produced by one successful ingest call."""

    added: int = 0
    skipped: int = 0
    filtered_out: int = 0
    records: List[StudyRecord] = field(default_factory=list)

    @property
    def message(self) -> str:
        """Combined human-readable status line."""
        parts = []
        if self.added:
            parts.append(f"Added {self.added} cohort(s).")
        if self.skipped:
            parts.append(f"{self.skipped} duplicate cohort(s) skipped.")
        if self.filtered_out:
            parts.append(f"{self.filtered_out} non-Phase 1-3 cohort(s) ignored.")
        return " ".join(parts)


def is_duplicate(candidate: CandidateRecord, known_records: Sequence[CandidateRecord]) -> bool:
    """True when a known record shares the candidate's natural key."""
    key = candidate.natural_key()
    return any(known.natural_key() == key for known in known_records)


def ingest(
    candidates: Sequence[CandidateRecord],
    known_records: Sequence[StudyRecord],
    store: BaseStore,
) -> IngestOutcome:
    """Validates, filters and deduplicates `candidates`, persisting the rest.

    Args:
        candidates: Cohorts extracted from one source file, in service order.
        known_records: Snapshot of stored studies taken when the batch
                       started. It is read, never modified.
        store: Destination for accepted cohorts.

    Returns:
        The added, skipped and filtered-out counts plus the new records.

    Raises:
        NoCohortsExtractedError: `candidates` is empty.
        NonViableCohortsError: nothing was added although candidates existed.
    """
    if not candidates:
        raise NoCohortsExtractedError()

    outcome = IngestOutcome()
    for candidate in candidates:
        if not candidate.is_well_formed():
            logger.debug("Dropping malformed candidate: %r", candidate.drug_name)
            continue

        if not candidate.has_classifiable_phase():
            outcome.filtered_out += 1
            logger.debug(
                "Filtered out %s / %s with phase %r",
                candidate.drug_name,
                candidate.trial_name,
                candidate.phase,
            )
            continue

        if is_duplicate(candidate, known_records):
            outcome.skipped += 1
            logger.debug(
                "Skipping duplicate cohort %s / %s", candidate.drug_name, candidate.trial_name
            )
            continue

        record = store.create(candidate)
        outcome.records.append(record)
        outcome.added += 1

    if outcome.added == 0:
        raise NonViableCohortsError(
            skipped=outcome.skipped, filtered_out=outcome.filtered_out
        )
    return outcome
