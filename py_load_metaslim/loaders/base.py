"""Defines the abstract base class for study stores."""

import abc
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any, List

from py_load_metaslim.models.study import CandidateRecord, StudyRecord

logger = logging.getLogger(__name__)

Subscriber = Callable[[List[StudyRecord]], None]

IMMUTABLE_FIELDS = frozenset({"id", "study_id", "created_at", "createdAt"})


class BaseStore(abc.ABC):
    """Abstract Base Class for all persistent study stores.

    Concrete stores implement the CRUD primitives. Change notification is
    handled here: every subscriber receives the full, newest-first list of
    studies when it subscribes and again after each successful mutation.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._last_created_at = 0

    def _next_created_at(self) -> int:
        """Returns an epoch-millisecond insertion marker that never goes backwards."""
        now = int(time.time() * 1000)
        self._last_created_at = max(now, self._last_created_at)
        return self._last_created_at

    @abc.abstractmethod
    def create(self, candidate: CandidateRecord) -> StudyRecord:
        """Persist a new study and return it with its id and creation timestamp."""
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, study_id: str) -> StudyRecord:
        """Return one study, raising StudyNotFoundError if it does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, study_id: str, fields: Mapping[str, Any]) -> StudyRecord:
        """Replace the given fields of a stored study.

        The id and creation timestamp can never be changed through this call.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, study_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete_many(self, study_ids: Iterable[str]) -> None:
        """Delete all listed studies in one operation. An empty list is a no-op."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_all(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def list_studies(self) -> List[StudyRecord]:
        """Return every stored study, newest first by creation time."""
        raise NotImplementedError

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback` for change notifications.

        The callback is invoked immediately with the current studies. The
        returned function removes the subscription.
        """
        self._subscribers.append(callback)
        callback(self.list_studies())

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        studies = self.list_studies()
        for callback in list(self._subscribers):
            callback(studies)

    @staticmethod
    def _apply_update(existing: StudyRecord, fields: Mapping[str, Any]) -> StudyRecord:
        """Merge `fields` (python or wire names) into `existing`, keeping identity."""
        dropped = IMMUTABLE_FIELDS.intersection(fields)
        if dropped:
            logger.debug("Ignoring immutable fields in update: %s", sorted(dropped))
        aliases = {
            name: info.alias or name for name, info in StudyRecord.model_fields.items()
        }
        merged = existing.model_dump(by_alias=True)
        for key, value in fields.items():
            if key in IMMUTABLE_FIELDS:
                continue
            merged[aliases.get(key, key)] = value
        return StudyRecord.model_validate(merged)
