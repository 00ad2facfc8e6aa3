import uuid
from collections.abc import Iterable, Mapping
from typing import Any, Dict, List

from py_load_metaslim.errors import StudyNotFoundError
from py_load_metaslim.loaders.base import BaseStore
from py_load_metaslim.models.study import CandidateRecord, StudyRecord


class MemoryStore(BaseStore):
    """Process-local store used for dry runs and tests."""

    def __init__(self, studies: Iterable[StudyRecord] | None = None):
        super().__init__()
        self._studies: Dict[str, StudyRecord] = {}
        for study in studies or []:
            if study.study_id is None:
                study = study.model_copy(update={"study_id": uuid.uuid4().hex})
            self._studies[study.study_id] = study
            self._last_created_at = max(self._last_created_at, study.created_at or 0)

    def create(self, candidate: CandidateRecord) -> StudyRecord:
        record = StudyRecord.from_candidate(
            candidate, study_id=uuid.uuid4().hex, created_at=self._next_created_at()
        )
        self._studies[record.study_id] = record
        self._notify()
        return record

    def get(self, study_id: str) -> StudyRecord:
        try:
            return self._studies[study_id]
        except KeyError:
            raise StudyNotFoundError(f"No study with id {study_id!r}") from None

    def update(self, study_id: str, fields: Mapping[str, Any]) -> StudyRecord:
        record = self._apply_update(self.get(study_id), fields)
        self._studies[study_id] = record
        self._notify()
        return record

    def delete(self, study_id: str) -> None:
        self._studies.pop(study_id, None)
        self._notify()

    def delete_many(self, study_ids: Iterable[str]) -> None:
        ids = list(study_ids)
        if not ids:
            return
        for study_id in ids:
            self._studies.pop(study_id, None)
        self._notify()

    def delete_all(self) -> None:
        if not self._studies:
            return
        self._studies.clear()
        self._notify()

    def list_studies(self) -> List[StudyRecord]:
        # Ties on created_at resolve to the most recently inserted study first.
        return list(reversed(sorted(self._studies.values(), key=lambda s: s.created_at or 0)))
