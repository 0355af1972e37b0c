# case_core/rules.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from .normalize import normalize_key, normalize_drug, split_words
from .types import (
    Category,
    SelectionState,
    RuleEntry,
    EXAM_SECTIONS,
    REQUEST_SECTIONS,
)

# Normalised rule ``type`` -> category. Anything not listed scores as "request".
RULE_CATEGORY_TABLE: Dict[str, Category] = {
    # history / examination
    "exam": "exam",
    "examination": "exam",
    "physical": "exam",
    "history": "exam",
    "anamnesis": "exam",
    "anamnez": "exam",
    "muayene": "exam",
    "hikaye": "exam",
    # ordered investigations
    "lab": "request",
    "labs": "request",
    "imaging": "request",
    "goruntuleme": "request",
    "tetkik": "request",
    "request": "request",
    "istek": "request",
    # treatment
    "drug": "treatment",
    "drugs": "treatment",
    "medication": "treatment",
    "ilac": "treatment",
    "procedure": "treatment",
    "procedures": "treatment",
    "islem": "treatment",
    "treatment": "treatment",
    "tedavi": "treatment",
    # diagnosis
    "diagnosis": "diagnosis",
    "dx": "diagnosis",
    "tani": "diagnosis",
}

DEFAULT_CATEGORY: Category = "request"

# rule types narrowed to a single selection section
_TYPE_SECTION: Dict[str, str] = {
    "lab": "labs",
    "labs": "labs",
    "imaging": "imaging",
    "goruntuleme": "imaging",
    "drug": "drugs",
    "drugs": "drugs",
    "medication": "drugs",
    "ilac": "drugs",
    "procedure": "procedures",
    "procedures": "procedures",
    "islem": "procedures",
}


def _lookup(table: Mapping[str, str], rule_type: Any) -> Optional[str]:
    """Whole normalised type first, then the first word of a compound type
    (``physical_exam``, ``lab test``) that the table knows."""
    whole = normalize_key(rule_type)
    if whole in table:
        return table[whole]
    for word in split_words(rule_type):
        if word in table:
            return table[word]
    return None


def map_rule_category(rule_type: Any) -> Category:
    return _lookup(RULE_CATEGORY_TABLE, rule_type) or DEFAULT_CATEGORY  # type: ignore[return-value]


def rule_section(rule_type: Any) -> Optional[str]:
    """Selection section a rule type is narrowed to, if any."""
    return _lookup(_TYPE_SECTION, rule_type)


def _keys(rows: Iterable, *, sections: Iterable[str] | None = None) -> FrozenSet[str]:
    wanted = set(sections) if sections is not None else None
    out = set()
    for r in rows:
        if wanted is not None and r.section not in wanted:
            continue
        k = normalize_key(r.key)
        if k:
            out.add(k)
    return frozenset(out)


def _flow_keys(flow_history: Iterable[Any]) -> FrozenSet[str]:
    """Exam/history choices recorded in the free-form flow log.

    Entries are either plain strings or dicts carrying ``key``/``choice``/``label``;
    dict entries tagged with a non-exam section are skipped.
    """
    out = set()
    for entry in flow_history or ():
        if isinstance(entry, Mapping):
            section = entry.get("section")
            if section and section not in EXAM_SECTIONS:
                continue
            raw = entry.get("key") or entry.get("choice") or entry.get("label")
        else:
            raw = entry
        k = normalize_key(raw)
        if k:
            out.add(k)
    return frozenset(out)


@dataclass(frozen=True)
class SelectionIndex:
    """Normalised lookup sets derived from one SelectionState snapshot."""
    exam: FrozenSet[str] = frozenset()
    requests: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    drugs: FrozenSet[str] = frozenset()
    procedure_results: FrozenSet[str] = frozenset()
    diagnosis: str = ""

    @classmethod
    def build(cls, selection: SelectionState, flow_history: Iterable[Any] = (), diagnosis_input: str = "") -> "SelectionIndex":
        every = list(selection.choices) + list(selection.requests) + list(selection.results)
        drugs = set()
        for r in every:
            if r.section == "drugs":
                k = normalize_drug(r.key)
                if k:
                    drugs.add(k)
        return cls(
            exam=_keys(selection.choices, sections=EXAM_SECTIONS) | _flow_keys(flow_history),
            requests={s: _keys(selection.requests, sections=(s,)) for s in REQUEST_SECTIONS},
            drugs=frozenset(drugs),
            procedure_results=_keys(selection.results, sections=("procedures",)),
            diagnosis=normalize_key(diagnosis_input),
        )

    def request_count(self, section: str) -> int:
        return len(self.requests.get(section, frozenset()))

    def all_requests(self) -> FrozenSet[str]:
        out: FrozenSet[str] = frozenset()
        for keys in self.requests.values():
            out = out | keys
        return out

    def procedures_done(self) -> FrozenSet[str]:
        return self.requests.get("procedures", frozenset()) | self.procedure_results


def is_performed(rule: RuleEntry, index: SelectionIndex) -> bool:
    """Whether the action a rule names shows up in the selection snapshot."""
    key = normalize_key(rule.key)
    if not key:
        return False
    section = rule_section(rule.type)
    cat = rule.category

    if cat == "exam":
        return key in index.exam
    if cat == "diagnosis":
        return bool(index.diagnosis) and key in index.diagnosis
    if cat == "treatment":
        drug_key = normalize_drug(rule.key)
        if section == "drugs":
            return drug_key in index.drugs
        if section == "procedures":
            return key in index.procedures_done()
        return drug_key in index.drugs or key in index.procedures_done()
    # request category, including unmapped rule types
    if section in REQUEST_SECTIONS:
        return key in index.requests.get(section, frozenset())
    return key in index.all_requests()


__all__ = [
    "RULE_CATEGORY_TABLE",
    "DEFAULT_CATEGORY",
    "map_rule_category",
    "rule_section",
    "SelectionIndex",
    "is_performed",
]
