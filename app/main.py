import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Path, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session
from starlette import status
from starlette.concurrency import run_in_threadpool
from starlette.requests import HTTPConnection

from app.core.auth import get_current_user_id, resolve_token
from app.core.db import engine, get_db
from app.core.errors import StudyMatchError
from app.core.settings import config_settings
from app.models.orm import group, message, study_session, user  # noqa: F401  (register tables)
from app.models.orm.base import Base
from app.models.schemas.group import GroupCreateModel, GroupResponseModel
from app.models.schemas.matching import MatchResponseModel
from app.models.schemas.message import (
    MessageCreateModel,
    MessageResponseModel,
    MessageWithUserModel,
    parse_join_frame,
)
from app.models.schemas.study_session import (
    ChecklistItemModel,
    ChecklistUpdateModel,
    SessionCompleteModel,
    SessionCreateModel,
    SessionResponseModel,
    SessionUpdateModel,
)
from app.models.schemas.user import UserPreferencesModel, UserResponseModel, UserUpsertModel
from app.services.agenda_service import AgendaGenerator, OpenAIAgendaGenerator
from app.services.chat_registry import ChatRoomRegistry
from app.services.embedding_service import EmbeddingProvider, OpenAIEmbeddingProvider
from app.services.group_service import GroupService
from app.services.matching_service import MatchingService
from app.services.message_service import MessageService
from app.services.study_session_service import StudySessionService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=config_settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    Base.metadata.create_all(bind=engine)

    # Process-wide services, torn down with the server
    app.state.chat_registry = ChatRoomRegistry()
    app.state.embedder = OpenAIEmbeddingProvider()
    app.state.agenda_generator = OpenAIAgendaGenerator()
    logger.info("Study group service started")

    yield

    app.state.chat_registry.close()
    await app.state.embedder.close()
    await app.state.agenda_generator.close()
    logger.info("Study group service stopped")


app = FastAPI(
    title="Study group matcher",
    description="Matches students into study groups, schedules sessions and relays group chat.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Dependencies ---

CurrentUser = Annotated[str, Depends(get_current_user_id)]


def get_chat_registry(connection: HTTPConnection) -> ChatRoomRegistry:
    return connection.app.state.chat_registry


def get_embedding_provider(request: Request) -> EmbeddingProvider:
    return request.app.state.embedder


def get_agenda_generator(request: Request) -> AgendaGenerator:
    return request.app.state.agenda_generator


def _domain_error(e: StudyMatchError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.detail)


@app.get("/health", status_code=status.HTTP_200_OK, summary="Liveness probe")
def health():
    return {"status": "ok"}


# --- Users ---


@app.put("/users/me", response_model=UserResponseModel, summary="Create or update my profile")
def put_me(user_data: UserUpsertModel, user_id: CurrentUser, db: Session = Depends(get_db)):
    return UserService(db).upsert_user(user_id, user_data)


@app.get("/users/me", response_model=UserResponseModel)
def get_me(user_id: CurrentUser, db: Session = Depends(get_db)):
    return UserService(db).get_user(user_id)


@app.patch("/users/me/preferences", response_model=UserResponseModel)
def patch_preferences(
    preferences: UserPreferencesModel, user_id: CurrentUser, db: Session = Depends(get_db)
):
    return UserService(db).update_preferences(user_id, preferences)


# --- Matching ---


@app.post(
    "/matching/find",
    response_model=MatchResponseModel,
    status_code=status.HTTP_201_CREATED,
    summary="Match me into a new study group",
)
async def post_find_matches(
    user_id: CurrentUser,
    db: Session = Depends(get_db),
    embedder: EmbeddingProvider = Depends(get_embedding_provider),
):
    """
    Scores every eligible student against the caller, creates a group with the
    best matches and schedules its first session for tomorrow evening.
    """
    matching_service = MatchingService(db, embedder)
    try:
        assembled = await matching_service.find_and_assemble(user_id)
    except StudyMatchError as e:
        logger.info("Matching for %s ended: %s", user_id, e.detail)
        raise _domain_error(e)
    except Exception:
        logger.exception("Unexpected error while matching user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to find matches",
        )

    return MatchResponseModel(group_id=assembled.group_id, match_count=assembled.match_count)


# --- Groups ---


@app.get("/groups", response_model=List[GroupResponseModel])
def get_my_groups(user_id: CurrentUser, db: Session = Depends(get_db)):
    return GroupService(db).get_groups_for_user(user_id)


@app.post("/groups", response_model=GroupResponseModel, status_code=status.HTTP_201_CREATED)
def post_group(group_data: GroupCreateModel, user_id: CurrentUser, db: Session = Depends(get_db)):
    return GroupService(db).create_group(user_id, group_data)


@app.get("/groups/{group_id}", response_model=GroupResponseModel)
def get_group(
    user_id: CurrentUser,
    group_id: str = Path(..., description="The ID of the group."),
    db: Session = Depends(get_db),
):
    return GroupService(db).get_group(group_id)


@app.post("/groups/{group_id}/members", response_model=GroupResponseModel)
def post_group_member(user_id: CurrentUser, group_id: str, db: Session = Depends(get_db)):
    return GroupService(db).join_group(group_id, user_id)


@app.get("/groups/{group_id}/sessions", response_model=List[SessionResponseModel])
def get_group_sessions(user_id: CurrentUser, group_id: str, db: Session = Depends(get_db)):
    return StudySessionService(db).get_sessions_for_group(group_id, user_id)


# --- Chat ---


@app.get("/groups/{group_id}/messages", response_model=List[MessageWithUserModel])
def get_group_messages(user_id: CurrentUser, group_id: str, db: Session = Depends(get_db)):
    return MessageService(db).get_history(group_id, user_id)


@app.post(
    "/groups/{group_id}/messages",
    response_model=MessageResponseModel,
    status_code=status.HTTP_201_CREATED,
    summary="Post a chat message and broadcast it to live members",
)
async def post_group_message(
    message_data: MessageCreateModel,
    user_id: CurrentUser,
    group_id: str,
    db: Session = Depends(get_db),
    registry: ChatRoomRegistry = Depends(get_chat_registry),
):
    return await MessageService(db, registry).post_message(group_id, user_id, message_data)


def _is_member_and_release(db: Session, group_id: str, user_id: Optional[str]) -> bool:
    try:
        return GroupService(db).is_member(group_id, user_id)
    finally:
        # Release the pooled connection; the socket may stay open for hours
        db.close()


@app.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    db: Session = Depends(get_db),
    registry: ChatRoomRegistry = Depends(get_chat_registry),
):
    """
    Real-time channel. Clients subscribe with
    ``{"type": "join", "groupId": ..., "token": ...}`` and then receive
    ``{"type": "message", ...}`` frames for that group.

    A join with an unknown token, or for a group the user is not a member
    of, closes the socket with a policy-violation code.
    """
    await websocket.accept()
    try:
        while True:
            event = await websocket.receive()
            if event["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(event.get("code", status.WS_1000_NORMAL_CLOSURE))

            # Text and binary frames carry the same JSON payload
            raw = event.get("text")
            if raw is None:
                try:
                    raw = (event.get("bytes") or b"").decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning("Ignoring undecodable binary websocket frame")
                    continue

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed websocket frame")
                continue

            frame = parse_join_frame(data)
            if frame is None:
                logger.warning("Ignoring unsupported websocket frame")
                continue

            joining_user = resolve_token(frame.token)
            allowed = await run_in_threadpool(
                _is_member_and_release, db, frame.group_id, joining_user
            )

            if not allowed:
                logger.warning("Rejected websocket join for group %s", frame.group_id)
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return

            registry.join(websocket, frame.group_id)
    except WebSocketDisconnect:
        pass
    finally:
        registry.leave(websocket)


# --- Sessions ---


@app.post("/sessions", response_model=SessionResponseModel, status_code=status.HTTP_201_CREATED)
def post_session(session_data: SessionCreateModel, user_id: CurrentUser, db: Session = Depends(get_db)):
    return StudySessionService(db).create_session(user_id, session_data)


@app.get("/sessions/upcoming", response_model=List[SessionResponseModel])
def get_upcoming_sessions(user_id: CurrentUser, db: Session = Depends(get_db)):
    return StudySessionService(db).get_upcoming_sessions(user_id)


@app.patch("/sessions/{session_id}", response_model=SessionResponseModel)
def patch_session(
    updates: SessionUpdateModel, user_id: CurrentUser, session_id: str, db: Session = Depends(get_db)
):
    return StudySessionService(db).update_session(session_id, user_id, updates)


@app.post("/sessions/{session_id}/generate-agenda", response_model=SessionResponseModel)
async def post_generate_agenda(
    user_id: CurrentUser,
    session_id: str,
    db: Session = Depends(get_db),
    generator: AgendaGenerator = Depends(get_agenda_generator),
):
    try:
        return await StudySessionService(db).generate_agenda(session_id, user_id, generator)
    except StudyMatchError as e:
        raise _domain_error(e)


@app.post("/sessions/{session_id}/complete", response_model=SessionResponseModel)
def post_complete_session(
    completion: SessionCompleteModel,
    user_id: CurrentUser,
    session_id: str,
    db: Session = Depends(get_db),
):
    return StudySessionService(db).complete_session(session_id, user_id, completion)


@app.patch("/checklist/{item_id}", response_model=ChecklistItemModel)
def patch_checklist_item(
    update: ChecklistUpdateModel, user_id: CurrentUser, item_id: str, db: Session = Depends(get_db)
):
    return StudySessionService(db).set_checklist_item(item_id, user_id, update.completed)


# Entry point for running the application directly during local development
if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
