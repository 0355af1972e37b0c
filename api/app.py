from __future__ import annotations
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, os, uuid, typing as t

# ---- Engine imports ----
from case_core.engine import CaseSession
from case_core.best_scores import BestScoreStore
from case_core.broadcast import CallbackBroadcaster
from case_core.case_bank import load_cases, find_case, featured_case_id
from case_core.config import (
    load_config, get_backend, AUDIT_EXPORT_ENABLED, SCORES_NAMESPACE, FLOW_TIMER_DURATION_MS,
)
from case_core.evaluator import evaluate
from case_core.llm_bridge import advisory_text, azure_settings
from case_core.types import SelectionState
from case_core.audit_export import to_json as findings_to_json, to_csv as findings_to_csv
from case_core.report_html import render_report_html
from .storage import (
    apply_host_action,
    delete_result,
    delete_session,
    ensure_session,
    get_session,
    list_selections,
    load_result,
    participant_scores,
    push_selection,
    remaining_ms,
    reset_session_data,
    save_result,
    update_participant_score,
    utcnow_iso,
)

log = logging.getLogger(__name__)

CASES = load_cases()
ATTEMPTS: dict[str, CaseSession] = {}
ATTEMPT_INFO: dict[str, dict[str, t.Any]] = {}

app = FastAPI(title="Case Trainer API")


@app.get("/")
def root():
    return {"status": "ok", "service": "case-trainer-api"}


ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    user_id: str
    case_id: str | None = None
    display_name: str | None = None
    session_id: str | None = None

class RequestReq(BaseModel):
    section: str        # "labs" | "imaging" | "procedures"
    key: str

class DrugReq(BaseModel):
    name: str
    dose: str = ""

class ChoiceReq(BaseModel):
    section: str        # "anamnez" | "muayene" | "hikaye"
    key: str
    result: str | None = None

class DispositionReq(BaseModel):
    text: str = ""

class DiagnosisReq(BaseModel):
    diagnosis: str

class EvaluateReq(BaseModel):
    scoring: dict[str, t.Any] | None = None
    selection: dict[str, t.Any] | None = None
    flow_history: list[t.Any] | None = None
    diagnosis: str = ""
    expected_diagnosis: str = ""
    elapsed_ms: float | None = None

class SessionReq(BaseModel):
    title: str | None = None
    activeCaseId: str | None = None
    status: str | None = None

class HostActionReq(BaseModel):
    action: str
    case_id: str | None = None

class SelectionReq(BaseModel):
    userId: str
    displayName: str | None = None
    caseId: str | None = None
    section: str
    key: str
    label: str | None = None

# ---- Helpers ----
def _store_for(user_id: str) -> BestScoreStore:
    return BestScoreStore(namespace=f"{SCORES_NAMESPACE}:{user_id}")


def _attempt(aid: str) -> CaseSession:
    sess = ATTEMPTS.get(aid)
    if not sess:
        raise HTTPException(404, "attempt not found")
    return sess


def _call(fn: t.Callable[..., t.Any], *args: t.Any, **kwargs: t.Any) -> t.Any:
    """Run an engine call, mapping bad input to 400 and finished attempts to 409."""
    try:
        return fn(*args, **kwargs)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    except RuntimeError as exc:
        raise HTTPException(409, str(exc))


def _advisory(payload: dict[str, t.Any]) -> str | None:
    return advisory_text(payload)


def _stored_evaluation(aid: str) -> dict[str, t.Any]:
    stored = load_result(aid)
    if stored:
        return stored
    sess = _attempt(aid)
    if sess.evaluation is None:
        raise HTTPException(409, "diagnosis not submitted yet")
    return _decorate_result(aid, sess)


def _decorate_result(aid: str, sess: CaseSession) -> dict[str, t.Any]:
    res = sess.evaluation.to_dict() if sess.evaluation else {}
    info = ATTEMPT_INFO.get(aid, {})
    res["meta"] = {
        "attemptId": aid,
        "caseId": sess.case_id,
        "userId": sess.user_id,
        "sessionId": info.get("session_id"),
        "startedAt": info.get("started_at"),
        "finishedAt": utcnow_iso(),
        "bestScore": sess.manager.best_score,
        "attempts": sess.manager.attempts,
        "message": sess.diagnosis_message,
        "disposition": sess.disposition,
    }
    return res

# ---- Health ----
@app.get("/health")
def health():
    cfg = load_config()
    return {
        "llm_backend": get_backend(cfg) or "none",
        "use_llm_advisory": bool(cfg.get("USE_LLM_ADVISORY")),
        "azure_config_present": azure_settings(cfg) is not None,
        "cases": len(CASES.get("cases") or []),
    }

# ---- Case bank ----
@app.get("/cases")
def list_cases():
    rows = [
        {"id": c.get("id"), "title": c.get("title"), "difficulty": c.get("difficulty"), "tags": c.get("tags") or []}
        for c in CASES.get("cases") or []
    ]
    return {"featured_case_id": featured_case_id(CASES), "cases": rows}


@app.get("/cases/{case_id}")
def get_case(case_id: str):
    case = find_case(CASES, case_id)
    if not case:
        raise HTTPException(404, "case not found")
    # answers and the expected diagnosis stay server-side
    hidden = {"final_diagnosis", "scoring", "labs", "imaging", "procedures"}
    public = {k: v for k, v in case.items() if k not in hidden}
    for section in ("labs", "imaging", "procedures"):
        src = case.get(section) or {}
        public[section] = [k for k in src if k != "default"] if isinstance(src, dict) else []
    return public

# ---- Attempts ----
@app.post("/attempts/start")
def start_attempt(req: StartReq):
    case_id = req.case_id or featured_case_id(CASES)
    case = find_case(CASES, case_id)
    if not case:
        raise HTTPException(404, "case not found")
    broadcaster = None
    if req.session_id:
        ensure_session(req.session_id)
        sid = req.session_id
        broadcaster = CallbackBroadcaster(lambda payload: update_participant_score(sid, payload))
    aid = str(uuid.uuid4())
    sess = CaseSession(
        case,
        req.user_id,
        display_name=req.display_name,
        store=_store_for(req.user_id),
        broadcaster=broadcaster,
        advisory=_advisory,
    )
    ATTEMPTS[aid] = sess
    ATTEMPT_INFO[aid] = {"session_id": req.session_id, "started_at": utcnow_iso()}
    sess.broadcast()
    log.info("attempt %s started: case=%s user=%s", aid, case_id, req.user_id)
    return {
        "attempt_id": aid,
        "case_id": sess.case_id,
        "story": case.get("story"),
        "paramedic": case.get("paramedic"),
        "bestScore": sess.manager.best_score,
        "attempts": sess.manager.attempts,
        "timerDurationMs": FLOW_TIMER_DURATION_MS,
    }


@app.post("/attempts/{aid}/request")
def attempt_request(aid: str, req: RequestReq):
    return _call(_attempt(aid).request, req.section, req.key)


@app.post("/attempts/{aid}/drug")
def attempt_drug(aid: str, req: DrugReq):
    return _call(_attempt(aid).give_drug, req.name, req.dose)


@app.post("/attempts/{aid}/choice")
def attempt_choice(aid: str, req: ChoiceReq):
    sess = _attempt(aid)
    _call(sess.record_choice, req.section, req.key, req.result)
    return {"ok": True, "selection": sess.selection.to_dict()}


@app.post("/attempts/{aid}/disposition")
def attempt_disposition(aid: str, req: DispositionReq):
    return {"disposition": _call(_attempt(aid).set_disposition, req.text)}


@app.post("/attempts/{aid}/diagnosis")
def attempt_diagnosis(aid: str, req: DiagnosisReq):
    sess = _attempt(aid)
    out = _call(sess.submit_diagnosis, req.diagnosis)
    save_result(aid, _decorate_result(aid, sess))
    return {"attempt_id": aid, **out}


@app.post("/attempts/{aid}/reset")
def attempt_reset(aid: str):
    sess = _attempt(aid)
    sess.reset()
    delete_result(aid)
    return sess.snapshot()


@app.get("/attempts/{aid}/breakdown")
def attempt_breakdown(aid: str):
    return _attempt(aid).snapshot()


@app.get("/attempts/{aid}/findings.json")
def attempt_findings_json(aid: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "findings export disabled")
    res = _stored_evaluation(aid)
    return {"attempt_id": aid, **findings_to_json(res.get("findings") or [])}


@app.get("/attempts/{aid}/findings.csv")
def attempt_findings_csv(aid: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "findings export disabled")
    res = _stored_evaluation(aid)
    body = findings_to_csv(res.get("findings") or [])
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{aid}_findings.csv\""},
    )


@app.get("/attempts/{aid}/report/html")
def attempt_report_html(aid: str):
    return {"html": render_report_html(_stored_evaluation(aid))}

# ---- Stateless evaluation ----
@app.post("/evaluate")
def evaluate_endpoint(req: EvaluateReq):
    try:
        selection = SelectionState.from_dict(req.selection)
        res = evaluate(
            req.scoring,
            selection,
            req.flow_history or [],
            req.diagnosis,
            req.expected_diagnosis,
            req.elapsed_ms,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return res.to_dict()

# ---- Best scores ----
@app.get("/users/{user_id}/best/{case_id}")
def best_score(user_id: str, case_id: str):
    rec = _store_for(user_id).load(case_id)
    return {"userId": user_id, "caseId": case_id, **rec.to_dict()}

# ---- Live sessions ----
@app.post("/sessions/{sid}")
def upsert_session(sid: str, req: SessionReq | None = None):
    payload = req.model_dump(exclude_none=True) if req else {}
    return ensure_session(sid, payload)


@app.get("/sessions/{sid}")
def read_session(sid: str):
    doc = get_session(sid)
    if not doc:
        raise HTTPException(404, "session not found")
    return {**doc, "remainingMs": remaining_ms(doc)}


@app.post("/sessions/{sid}/action")
def session_action(sid: str, req: HostActionReq):
    if not get_session(sid):
        raise HTTPException(404, "session not found")
    try:
        doc = apply_host_action(sid, req.action, req.case_id)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    if doc is None:
        raise HTTPException(404, "session not found")
    log.info("session %s host action %s", sid, req.action)
    return {**doc, "remainingMs": remaining_ms(doc)}


@app.get("/sessions/{sid}/scoreboard")
def session_scoreboard(sid: str):
    return {"session_id": sid, "participants": participant_scores(sid)}


@app.post("/sessions/{sid}/selections")
def add_selection(sid: str, req: SelectionReq):
    push_selection(sid, req.model_dump())
    return {"ok": True}


@app.get("/sessions/{sid}/selections")
def read_selections(sid: str):
    return {"session_id": sid, "selections": list_selections(sid)}


@app.post("/sessions/{sid}/reset")
def session_reset(sid: str):
    if not reset_session_data(sid):
        raise HTTPException(404, "session not found")
    return {"ok": True}


@app.delete("/sessions/{sid}")
def remove_session(sid: str):
    if not delete_session(sid):
        raise HTTPException(404, "session not found")
    return {"ok": True}
