import logging
from typing import List, Dict
from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse

from blueprint.core.exceptions import (
    BlueprintGenerationError,
    DuplicateAdvancementError,
    IncompleteSessionError,
    InvalidDecisionError,
    SessionNotFoundError,
)
from blueprint.models.api import (
    GenerateResponse,
    GenerationRequest,
    NextQuestionRequest,
    NextQuestionResponse,
    PathSummary,
    RecordDecisionRequest,
    SaveSessionRequest,
    SaveSessionResponse,
    SessionStateResponse,
)
from blueprint.models.decision_tree import EducationalTooltip
from blueprint.models.session import WizardSession
from blueprint.services import decision_engine

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_COOKIE_KEY = "wizard_session_id"


def _state_response(request: Request, session: WizardSession) -> SessionStateResponse:
    repository = request.app.state.tree_repository
    result = decision_engine.next_node(repository, session.purpose, session.platform, session.decisions)
    progress = decision_engine.calculate_progress(repository, session.purpose, session.platform, session.decisions)
    return SessionStateResponse(
        session=session,
        completed=result.completed,
        question=result.question,
        progress=progress,
    )


@router.post("/next", response_model=NextQuestionResponse)
async def next_question(request: Request, body: NextQuestionRequest):
    repository = request.app.state.tree_repository
    session_service = request.app.state.session_service
    try:
        session_service.validate_decisions(body.decisions, body.purpose, body.platform)
    except InvalidDecisionError as e:
        raise HTTPException(422, str(e))

    result = decision_engine.next_node(repository, body.purpose, body.platform, body.decisions)
    progress = decision_engine.calculate_progress(repository, body.purpose, body.platform, body.decisions)
    return NextQuestionResponse(completed=result.completed, question=result.question, progress=progress)


@router.post("/save", response_model=SaveSessionResponse)
async def save_session(request: Request, body: SaveSessionRequest):
    session_service = request.app.state.session_service
    try:
        snapshot = session_service.upsert_snapshot(body.session_id, body.decisions, body.purpose, body.platform)
    except InvalidDecisionError as e:
        raise HTTPException(422, str(e))

    # Persistence failures are reported, never raised: the wizard keeps going in memory.
    success = await session_service.save(snapshot)
    return SaveSessionResponse(success=success)


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate(request: Request, body: GenerationRequest):
    session_service = request.app.state.session_service
    generator = request.app.state.blueprint_generator
    try:
        generation_request = decision_engine.build_generation_request(
            body.session_id, body.purpose, body.platform, body.decisions
        )
        session_service.validate_decisions(generation_request.decisions, generation_request.purpose, generation_request.platform)
    except IncompleteSessionError as e:
        raise HTTPException(400, str(e))
    except InvalidDecisionError as e:
        raise HTTPException(422, str(e))

    try:
        blueprint = await generator.generate(generation_request)
    except BlueprintGenerationError as e:
        logger.error(f"Error generating blueprint for session {body.session_id}: {e}")
        failure = GenerateResponse(success=False, session_id=body.session_id, error=str(e))
        return JSONResponse(status_code=502, content=failure.model_dump(by_alias=True, exclude_none=True))

    await session_service.archive_session(body.session_id, blueprint.model_dump(by_alias=True))
    return GenerateResponse(success=True, session_id=body.session_id, data=blueprint)


@router.post("/sessions", response_model=SessionStateResponse)
async def start_session(request: Request):
    session_service = request.app.state.session_service
    session_id = session_service.create_session()
    request.session[SESSION_COOKIE_KEY] = session_id
    return _state_response(request, session_service.get_session(session_id))


@router.get("/session")
async def current_session(request: Request):
    session_service = request.app.state.session_service
    session_id = request.session.get(SESSION_COOKIE_KEY)
    if not session_id:
        return {"session": None}
    try:
        session = session_service.get_session(session_id)
    except SessionNotFoundError:
        return {"session": None}
    return {"session": _state_response(request, session).model_dump(by_alias=True, mode="json")}


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
async def get_session(request: Request, session_id: str):
    session_service = request.app.state.session_service
    try:
        session = session_service.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(404, str(e))
    return _state_response(request, session)


@router.post("/sessions/{session_id}/decisions", response_model=SessionStateResponse)
async def record_decision(request: Request, session_id: str, body: RecordDecisionRequest):
    session_service = request.app.state.session_service
    try:
        session = session_service.submit_decision(session_id, body.node_id, body.value)
    except SessionNotFoundError as e:
        raise HTTPException(404, str(e))
    except DuplicateAdvancementError as e:
        raise HTTPException(409, str(e))
    except InvalidDecisionError as e:
        raise HTTPException(422, str(e))
    return _state_response(request, session)


@router.post("/sessions/{session_id}/resume", response_model=SessionStateResponse)
async def resume_session(request: Request, session_id: str):
    session_service = request.app.state.session_service
    try:
        session = await session_service.load_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(404, str(e))
    except InvalidDecisionError as e:
        raise HTTPException(422, f"Stored session no longer matches the decision tree: {e}")
    request.session[SESSION_COOKIE_KEY] = session_id
    return _state_response(request, session)


@router.get("/paths", response_model=List[PathSummary])
async def list_paths(request: Request):
    repository = request.app.state.tree_repository
    return [
        PathSummary(purpose=purpose, platform=platform, total_steps=decision_engine.FIXED_STEPS + length)
        for purpose, platform, length in repository.available_paths()
    ]


@router.get("/tooltips", response_model=Dict[str, EducationalTooltip])
async def list_tooltips(request: Request):
    return request.app.state.tree_repository.tooltips
