# case_core/engine.py
from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import logging
import uuid

from .best_scores import BestScoreStore
from .broadcast import NullBroadcaster, ScoreBroadcaster, score_payload
from .case_bank import static_result, find_drug, KEYED_SECTIONS
from .evaluator import evaluate
from .tracker import ScoreManager, _now_ms
from .types import ActionRecord, EvaluationResult, SelectionState, EXAM_SECTIONS

log = logging.getLogger(__name__)

_ACTION_TYPE: Dict[str, str] = {"labs": "lab", "imaging": "imaging", "procedures": "procedure"}

Advisory = Callable[[Dict[str, Any]], Optional[str]]


def _no_advisory(payload: Dict[str, Any]) -> Optional[str]:
    return None


class CaseSession:
    """One learner's attempt at one case.

    Holds everything the browser client used to keep in module globals: the
    case record, the selection snapshot, the free-form flow log and the
    ``ScoreManager``. Every score-affecting call pushes a payload through the
    broadcaster.
    """

    def __init__(
        self,
        case: Dict[str, Any],
        user_id: str,
        *,
        display_name: Optional[str] = None,
        store: Optional[BestScoreStore] = None,
        broadcaster: Optional[ScoreBroadcaster] = None,
        advisory: Optional[Advisory] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        self.case = case
        self.case_id = str(case.get("id") or "")
        self.user_id = user_id
        self.display_name = display_name
        self.broadcaster = broadcaster or NullBroadcaster()
        self.advisory = advisory or _no_advisory
        self._clock = clock
        self.manager = ScoreManager(user_id, self.case_id, case.get("scoring"), store=store, clock=clock)
        self._clear()
        self.manager.start_case_timer()

    def _clear(self) -> None:
        self.selection = SelectionState()
        self.flow_history: List[Any] = []
        self.log: List[Dict[str, Any]] = []
        self.disposition: str = ""
        self.diagnosis_message: Optional[str] = None
        self.evaluation: Optional[EvaluationResult] = None

    @property
    def finished(self) -> bool:
        return self.evaluation is not None

    def _guard_open(self) -> None:
        if self.finished:
            raise RuntimeError(f"case {self.case_id} already has a submitted diagnosis")

    def _record(self, section: str, key: str, result: Optional[str]) -> ActionRecord:
        return ActionRecord(id=uuid.uuid4().hex, section=section, key=key, created_at=self._clock(), result=result)

    def _append_log(self, section: str, action_type: str, key: Optional[str], result: Any, delta: float) -> None:
        self.log.append({
            "section": section,
            "actionType": action_type,
            "key": key,
            "result": result,
            "scoreDelta": delta,
            "at": int(self._clock()),
        })

    def _resolve_text(self, section: str, action_type: str, key: str, static: str, **extra: Any) -> str:
        payload = {"userId": self.user_id, "caseId": self.case_id, "section": section,
                   "actionType": action_type, "key": key, "state": {}, **extra}
        return self.advisory(payload) or static

    def broadcast(self) -> Dict[str, Any]:
        payload = score_payload(
            self.manager.get_breakdown(),
            user_id=self.user_id,
            case_id=self.case_id,
            elapsed_ms=self.manager.get_elapsed_ms(),
            display_name=self.display_name,
        )
        self.broadcaster.publish(payload)
        return payload

    # ---- actions ----
    def request(self, section: str, key: str) -> Dict[str, Any]:
        """Order a lab, imaging study or procedure."""
        if section not in KEYED_SECTIONS:
            raise ValueError(f"unknown request section: {section!r}")
        self._guard_open()
        action_type = _ACTION_TYPE[section]
        static, defined = static_result(self.case, section, key)
        text = self._resolve_text(section, action_type, key, static)

        self.selection.requests.append(self._record(section, key, None))
        self.selection.results.append(self._record(section, key, static))
        delta = self.manager.apply_penalty(action_type, unnecessary=not defined)
        self._append_log(section, action_type, key, text, delta)
        self.broadcast()
        return {"result": text, "scoreDelta": delta, "unnecessary": not defined, "score": self.manager.current_score}

    def give_drug(self, name: str, dose: str = "") -> Dict[str, Any]:
        self._guard_open()
        drug = find_drug(self.case, name)
        if drug is None:
            raise ValueError(f"drug not defined for case {self.case_id}: {name!r}")
        name = str(drug.get("name") or name)
        static = drug.get("response") or "Tedavi uygulandı."
        text = self._resolve_text("drugs", "drug", name, static, dose=dose)
        key = f"{name} ({dose})" if dose else name
        self.selection.choices.append(self._record("drugs", key, None))
        self.selection.results.append(self._record("drugs", key, static))
        self._append_log("drugs", "drug", name, f"{key}: {text}", 0)
        return {"result": text, "scoreDelta": 0}

    def record_choice(self, section: str, key: str, result: Optional[str] = None) -> None:
        """History-taking / examination choice (anamnez, muayene, hikaye)."""
        if section not in EXAM_SECTIONS:
            raise ValueError(f"unknown choice section: {section!r}")
        self._guard_open()
        self.selection.choices.append(self._record(section, key, result))
        self.flow_history.append({"section": section, "key": key})
        self._append_log(section, "choice", key, result, 0)

    def record_step(self, entry: Any) -> None:
        self.flow_history.append(entry)

    def set_disposition(self, text: str) -> str:
        self.disposition = (text or "").strip()
        shown = self.disposition or "Plan kaydedildi."
        self._append_log("disposition", "set_disposition", None, shown, 0)
        return shown

    def submit_diagnosis(self, diagnosis: str) -> Dict[str, Any]:
        self._guard_open()
        given = (diagnosis or "").strip()
        if not given:
            raise ValueError("diagnosis text is empty")
        expected = str(self.case.get("final_diagnosis") or "").strip()
        elapsed = self.manager.get_elapsed_ms()

        result = evaluate(
            self.manager.scoring,
            self.selection,
            list(self.flow_history),
            given,
            expected,
            elapsed,
        )
        preview = self.manager.apply_diagnosis(result.diagnosis.is_correct)
        self.manager.apply_final_evaluation(result)
        self.evaluation = result

        if result.diagnosis.is_correct:
            msg = f"Doğru: {expected}. Bonus +{preview['diagnosisDelta']:g} puan."
        else:
            msg = f"Beklenen tanı: {expected}. Girilen: {given}."
        self.diagnosis_message = msg
        self._append_log("diagnosis", "submit_diagnosis", None, msg, preview["total"])
        log.info("case %s user %s finished: total=%s best=%s attempts=%s",
                 self.case_id, self.user_id, result.total, self.manager.best_score, self.manager.attempts)
        self.broadcast()
        return {
            "message": msg,
            "evaluation": result.to_dict(),
            "breakdown": self.manager.get_breakdown().to_dict(),
            "bestScore": self.manager.best_score,
            "attempts": self.manager.attempts,
        }

    def reset(self) -> None:
        self.manager.reset()
        self._clear()
        self.broadcast()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "caseId": self.case_id,
            "userId": self.user_id,
            "score": self.manager.current_score,
            "bestScore": self.manager.best_score,
            "attempts": self.manager.attempts,
            "elapsedMs": int(self.manager.get_elapsed_ms()),
            "finished": self.finished,
            "breakdown": self.manager.get_breakdown().to_dict(),
            "selection": self.selection.to_dict(),
            "log": list(self.log),
        }


__all__ = ["CaseSession"]
