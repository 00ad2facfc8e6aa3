import pytest

from py_load_metaslim.loaders.memory import MemoryStore
from py_load_metaslim.models.study import CandidateRecord


def candidate_data(**overrides):
    """Wire-format study as the AI service would return it."""
    data = {
        "drugName": "semaglutide",
        "drugClass": "GLP-1 RA",
        "company": "Novo Nordisk",
        "trialName": "STEP-1",
        "phase": "Phase 3",
        "hasT2D": False,
        "isChineseCohort": False,
        "durationWeeks": 68,
        "summary": "Semaglutide 2.4mg led to 14.9% weight loss.",
        "doses": [
            {
                "dose": "2.4mg",
                "weightLossPercent": 15.8,
                "nauseaPercent": 44.2,
                "vomitingPercent": 24.8,
                "diarrheaPercent": 31.5,
                "constipationPercent": 23.4,
            }
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_candidate():
    """Factory for CandidateRecords with sensible defaults."""

    def _make(**overrides):
        return CandidateRecord.model_validate(candidate_data(**overrides))

    return _make


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_form():
    """Factory for raw wire-format study mappings."""
    return candidate_data
