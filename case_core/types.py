from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Literal, Any, Mapping

Category = Literal["exam", "request", "treatment", "diagnosis"]
CATEGORIES: tuple[Category, ...] = ("exam", "request", "treatment", "diagnosis")

RuleKind = Literal["required", "unnecessary", "bonus"]
Section = Literal["labs", "imaging", "procedures", "drugs", "anamnez", "muayene", "hikaye"]
SECTIONS: tuple[str, ...] = ("labs", "imaging", "procedures", "drugs", "anamnez", "muayene", "hikaye")
EXAM_SECTIONS: frozenset[str] = frozenset({"anamnez", "muayene", "hikaye"})
REQUEST_SECTIONS: tuple[str, ...] = ("labs", "imaging", "procedures")


@dataclass(frozen=True)
class RuleEntry:
    kind: RuleKind
    type: str
    key: str
    amount: float = 0.0
    category: Category = "request"


@dataclass(frozen=True)
class CategoryWeights:
    exam: float = 1.0
    request: float = 1.0
    treatment: float = 1.0
    diagnosis: float = 1.0

    def get(self, cat: str) -> float:
        return float(getattr(self, cat, 0.0))

    def total(self) -> float:
        return sum(self.get(c) for c in CATEGORIES)


@dataclass(frozen=True)
class Caps:
    overall_min: float = 0.0
    overall_max: float = 100.0
    category_max: Dict[str, float] = field(default_factory=lambda: {c: 100.0 for c in CATEGORIES})


@dataclass(frozen=True)
class ScoringConfig:
    base: float = 100
    penalty_per_lab: float = 5
    penalty_per_imaging: float = 8
    penalty_per_procedure: float = 10
    penalty_unnecessary: float = 6
    penalty_wrong_dx: float = 25
    bonus_correct_dx: float = 50
    penalty_on_missing_default: float = 10
    speed_bonus_window_sec: float = 120
    speed_max_bonus: float = 25
    required: List[RuleEntry] = field(default_factory=list)
    unnecessary: List[RuleEntry] = field(default_factory=list)
    bonus: List[RuleEntry] = field(default_factory=list)
    category_weights: CategoryWeights = field(default_factory=CategoryWeights)
    caps: Caps = field(default_factory=Caps)


@dataclass(frozen=True)
class ActionRecord:
    """One learner action. ``section`` is one of SECTIONS, ``created_at`` epoch ms."""
    id: str
    section: str
    key: str
    created_at: float = 0.0
    result: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ActionRecord":
        return cls(
            id=str(raw.get("id") or ""),
            section=str(raw.get("section") or ""),
            key=str(raw.get("key") or ""),
            created_at=float(raw.get("createdAt", raw.get("created_at", 0)) or 0),
            result=raw.get("result"),
        )


@dataclass
class SelectionState:
    """Three logical buckets; a single action may sit in more than one."""
    choices: List[ActionRecord] = field(default_factory=list)
    requests: List[ActionRecord] = field(default_factory=list)
    results: List[ActionRecord] = field(default_factory=list)

    # wire names used by the browser client
    _ALIASES = {"choices": "secimler", "requests": "istekler", "results": "sonuclar"}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SelectionState":
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ValueError("selection state must be an object")
        buckets: Dict[str, List[ActionRecord]] = {}
        for name, alias in cls._ALIASES.items():
            rows = raw.get(name)
            if rows is None:
                rows = raw.get(alias)
            if not isinstance(rows, (list, tuple)) and rows is not None:
                raise ValueError(f"selection bucket {alias!r} must be a list")
            out: List[ActionRecord] = []
            for r in rows or []:
                if isinstance(r, ActionRecord):
                    out.append(r)
                elif isinstance(r, Mapping):
                    out.append(ActionRecord.from_dict(r))
                else:
                    raise ValueError(f"selection row in {alias!r} must be an object, got {type(r).__name__}")
            buckets[name] = out
        return cls(**buckets)

    def to_dict(self) -> Dict[str, Any]:
        return {alias: [asdict(r) for r in getattr(self, name)] for name, alias in self._ALIASES.items()}


@dataclass(frozen=True)
class Finding:
    category: Category
    delta: float
    reason: str


@dataclass(frozen=True)
class DiagnosisVerdict:
    input: str
    expected: str
    is_correct: bool


@dataclass(frozen=True)
class EvaluationResult:
    total: int
    categories: Dict[str, int]
    findings: List[Finding]
    diagnosis: DiagnosisVerdict
    speed_bonus: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "categories": dict(self.categories),
            "findings": [asdict(f) for f in self.findings],
            "diagnosis": {
                "input": self.diagnosis.input,
                "expected": self.diagnosis.expected,
                "isCorrect": self.diagnosis.is_correct,
            },
            "speedBonus": self.speed_bonus,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    base: float
    penalty_total: float
    speed_bonus: float
    diagnosis_score: float
    total: float
    evaluation: Optional[EvaluationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base,
            "penaltyTotal": self.penalty_total,
            "speedBonus": self.speed_bonus,
            "diagnosisScore": self.diagnosis_score,
            "total": self.total,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
        }


@dataclass(frozen=True)
class BestScoreRecord:
    best_score: Optional[float] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"bestScore": self.best_score, "attempts": self.attempts}
