from __future__ import annotations

import itertools

import pytest

from case_core.best_scores import BestScoreStore
from case_core.types import ActionRecord, SelectionState


_IDS = itertools.count(1)


def record(section: str, key: str, result: str | None = None) -> ActionRecord:
    n = next(_IDS)
    return ActionRecord(id=f"a{n}", section=section, key=key, created_at=float(n), result=result)


def build_selection(
    *,
    choices: list[tuple[str, str]] | None = None,
    requests: list[tuple[str, str]] | None = None,
    results: list[tuple[str, str]] | None = None,
) -> SelectionState:
    """Selection snapshot from (section, key) pairs; every request also yields a result."""

    reqs = [record(s, k) for s, k in (requests or [])]
    res = [record(s, k, "ok") for s, k in (requests or [])] + [record(s, k, "ok") for s, k in (results or [])]
    return SelectionState(
        choices=[record(s, k) for s, k in (choices or [])],
        requests=reqs,
        results=res,
    )


def build_case(
    *,
    case_id: str = "case-t",
    final_diagnosis: str = "STEMI",
    scoring: dict | None = None,
) -> dict:
    """Small deterministic case record for engine and API tests."""

    return {
        "id": case_id,
        "title": "Test vakası",
        "story": "Göğüs ağrısı ile gelen hasta.",
        "labs": {"troponin": "Yüksek", "d_dimer": "Normal", "default": "Bu tetkik için sonuç yok."},
        "imaging": {"ekg": "ST elevasyonu", "default": "Bu görüntüleme için kayıt yok."},
        "procedures": {"defibrillation": "Şok verildi.", "default": "Prosedür sonucu kaydı yok."},
        "drugs": [{"name": "Aspirin", "doses": ["300 mg"], "response": "Ağrı azalır."}],
        "final_diagnosis": final_diagnosis,
        "scoring": scoring if scoring is not None else {
            "required": [
                {"type": "imaging", "key": "EKG", "penalty_on_skip": 20},
                {"type": "drug", "key": "Aspirin"},
            ],
            "unnecessary": [{"type": "lab", "key": "D-Dimer", "penalty": 4}],
            "bonus": [{"type": "anamnez", "key": "Ağrı karakteri", "bonus": 5}],
        },
    }


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path) -> BestScoreStore:
    return BestScoreStore(tmp_path / "scores.json")
