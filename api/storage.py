"""Persistence for live classroom sessions and finished attempt results.

A session document holds the host-controlled state (status, active case,
countdown timer); each session also keeps one score record per participant
and an append-only selection log. Everything is a JSON file under
``DATA_DIR`` so the API survives restarts without a database.
"""

from __future__ import annotations

import json
import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from case_core.config import FLOW_TIMER_DURATION_MS, HOST_ACTIONS


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
SESSIONS_PATH = DATA_ROOT / "sessions.json"
RESULTS_DIR = DATA_ROOT / "results"

_LOCK = threading.Lock()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def _load_sessions() -> Dict[str, Dict[str, Any]]:
    data = _read_json(SESSIONS_PATH, {})
    return data if isinstance(data, dict) else {}


def _blank_session(session_id: str) -> Dict[str, Any]:
    return {
        "id": session_id,
        "status": "pending",
        "activeCaseId": None,
        "timerRunning": False,
        "timerStartedAt": None,
        "timerStoppedAt": None,
        "participants": {},
        "selections": [],
    }


def _public(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k not in ("participants", "selections")}


# ---- session document ----
def ensure_session(session_id: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create the session if missing and merge ``payload`` into it (None values skipped)."""
    with _LOCK:
        sessions = _load_sessions()
        doc = sessions.get(session_id) or _blank_session(session_id)
        for k, v in (payload or {}).items():
            if v is not None and k not in ("participants", "selections", "id"):
                doc[k] = v
        doc["updatedAt"] = utcnow_iso()
        sessions[session_id] = doc
        _write_json(SESSIONS_PATH, sessions)
        return _public(doc)


def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    doc = _load_sessions().get(session_id)
    return _public(doc) if doc else None


def update_session_state(session_id: str, state: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    with _LOCK:
        sessions = _load_sessions()
        doc = sessions.get(session_id)
        if doc is None:
            return None
        for k, v in state.items():
            if k not in ("participants", "selections", "id"):
                doc[k] = v
        doc["updatedAt"] = utcnow_iso()
        _write_json(SESSIONS_PATH, sessions)
        return _public(doc)


# ---- host controls ----
def _host_state(action: str, at: int) -> Dict[str, Any]:
    if action == "startCase":
        return {"status": "running"}
    if action == "endCase":
        return {"status": "completed"}
    if action == "nextCase":
        return {"status": "pending", "activeCaseId": None}
    if action == "startTimer":
        return {"timerRunning": True, "timerStartedAt": at, "timerStoppedAt": None}
    return {"timerRunning": False, "timerStoppedAt": at}


def apply_host_action(session_id: str, action: str, case_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Apply one host control action; raises ValueError for an unknown action."""
    if action not in HOST_ACTIONS:
        raise ValueError(f"unknown host action: {action!r}")
    state = _host_state(action, now_ms())
    if action == "startCase" and case_id:
        state["activeCaseId"] = case_id
    return update_session_state(session_id, state)


def remaining_ms(session: Dict[str, Any], *, now: Optional[int] = None,
                 duration_ms: int = FLOW_TIMER_DURATION_MS) -> int:
    started = session.get("timerStartedAt")
    if not started:
        return duration_ms
    end = session.get("timerStoppedAt") or (now if now is not None else now_ms())
    return max(0, int(duration_ms - (end - started)))


def delete_session(session_id: str) -> bool:
    with _LOCK:
        sessions = _load_sessions()
        if session_id not in sessions:
            return False
        sessions.pop(session_id, None)
        _write_json(SESSIONS_PATH, sessions)
        return True


def reset_session_data(session_id: str) -> bool:
    """Drop participant scores and the selection log, keep the session itself."""
    with _LOCK:
        sessions = _load_sessions()
        doc = sessions.get(session_id)
        if doc is None:
            return False
        doc["participants"] = {}
        doc["selections"] = []
        doc["updatedAt"] = utcnow_iso()
        _write_json(SESSIONS_PATH, sessions)
        return True


# ---- participant scores ----
def update_participant_score(session_id: str, payload: Dict[str, Any]) -> bool:
    participant_id = payload.get("userId")
    if not session_id or not participant_id:
        return False
    with _LOCK:
        sessions = _load_sessions()
        doc = sessions.setdefault(session_id, _blank_session(session_id))
        participants = doc.setdefault("participants", {})
        current = participants.get(participant_id, {})
        current.update({k: v for k, v in payload.items() if v is not None})
        current["id"] = participant_id
        current["updatedAt"] = utcnow_iso()
        participants[participant_id] = current
        _write_json(SESSIONS_PATH, sessions)
        return True


def participant_scores(session_id: str) -> List[Dict[str, Any]]:
    doc = _load_sessions().get(session_id) or {}
    rows = list((doc.get("participants") or {}).values())
    rows.sort(key=lambda r: r.get("score") or 0, reverse=True)
    return rows


# ---- selection log ----
def push_selection(session_id: str, payload: Dict[str, Any]) -> bool:
    if not session_id:
        return False
    with _LOCK:
        sessions = _load_sessions()
        doc = sessions.setdefault(session_id, _blank_session(session_id))
        entry = dict(payload)
        entry["createdAt"] = now_ms()
        doc.setdefault("selections", []).append(entry)
        _write_json(SESSIONS_PATH, sessions)
        return True


def list_selections(session_id: str) -> List[Dict[str, Any]]:
    doc = _load_sessions().get(session_id) or {}
    rows = list(doc.get("selections") or [])
    rows.sort(key=lambda r: r.get("createdAt") or 0, reverse=True)
    return rows


# ---- finished attempts ----
def save_result(attempt_id: str, result: Dict[str, Any]) -> None:
    _write_json(RESULTS_DIR / f"{attempt_id}.json", result)


def load_result(attempt_id: str) -> Optional[Dict[str, Any]]:
    path = RESULTS_DIR / f"{attempt_id}.json"
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return None


def delete_result(attempt_id: str) -> bool:
    path = RESULTS_DIR / f"{attempt_id}.json"
    if not path.exists():
        return False
    path.unlink()
    return True
