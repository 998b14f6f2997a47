# services/study_session_service.py
import logging
from datetime import datetime
from typing import Callable, List, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.db import transaction
from app.models.orm.study_session import ChecklistItemORM, StudySessionORM
from app.models.schemas.study_session import (
    SessionAgenda,
    SessionCompleteModel,
    SessionCreateModel,
    SessionUpdateModel,
)
from app.repositories.group_repo import GroupRepository
from app.repositories.study_session_repo import StudySessionRepository
from app.services.agenda_service import AgendaGenerator
from app.services.group_service import GroupService

logger = logging.getLogger(__name__)

DEFAULT_COURSE_NAME = "Study Session"


def checklist_completion_percent(items: List[ChecklistItemORM]) -> int:
    if not items:
        return 0
    done = sum(1 for item in items if item.completed)
    return round(100 * done / len(items))


class StudySessionService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.session_repo = StudySessionRepository(db)
        self.group_repo = GroupRepository(db)
        self.group_service = GroupService(db)
        self.clock = clock

    def _get_session_for_member(self, session_id: str, user_id: str) -> StudySessionORM:
        db_session = self.session_repo.get_session(session_id)
        if db_session is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Session {session_id} not found.",
            )
        self.group_service.require_membership(db_session.group_id, user_id)
        return db_session

    def create_session(self, user_id: str, session_data: SessionCreateModel) -> StudySessionORM:
        self.group_service.require_membership(session_data.group_id, user_id)
        with transaction(self.db):
            db_session = self.session_repo.create_session(**session_data.model_dump())
            session_id = db_session.session_id
        return self.session_repo.get_session(session_id)

    def update_session(
        self, session_id: str, user_id: str, updates: SessionUpdateModel
    ) -> StudySessionORM:
        db_session = self._get_session_for_member(session_id, user_id)
        with transaction(self.db):
            self.session_repo.update_session(db_session, **updates.model_dump(exclude_unset=True))
        return self.session_repo.get_session(session_id)

    def get_sessions_for_group(self, group_id: str, user_id: str) -> List[StudySessionORM]:
        self.group_service.require_membership(group_id, user_id)
        return self.session_repo.get_sessions_for_group(group_id)

    def get_upcoming_sessions(self, user_id: str) -> List[StudySessionORM]:
        group_ids = self.group_repo.get_group_ids_for_user(user_id)
        return self.session_repo.get_upcoming_sessions(group_ids, now=self.clock())

    async def generate_agenda(
        self, session_id: str, user_id: str, generator: AgendaGenerator
    ) -> StudySessionORM:
        """
        Asks the agenda generator for objectives, practice questions and a
        time plan, stores them on the session and turns each objective into a
        checklist item.
        """
        topics, duration = await run_in_threadpool(self._agenda_inputs, session_id, user_id)
        course_name = topics[0] if topics else DEFAULT_COURSE_NAME

        agenda = await generator.generate(course_name=course_name, topics=topics, duration=duration)

        return await run_in_threadpool(self._store_agenda, session_id, agenda)

    def _agenda_inputs(self, session_id: str, user_id: str) -> Tuple[List[str], int]:
        db_session = self._get_session_for_member(session_id, user_id)
        return list(db_session.group.topics or []), db_session.duration or 90

    def _store_agenda(self, session_id: str, agenda: SessionAgenda) -> StudySessionORM:
        db_session = self.session_repo.get_session(session_id)
        with transaction(self.db):
            self.session_repo.update_session(
                db_session,
                objectives=agenda.objectives,
                practice_questions=[q.model_dump() for q in agenda.practice_questions],
                time_schedule=[slot.model_dump() for slot in agenda.time_schedule],
            )
            for objective in agenda.objectives:
                self.session_repo.create_checklist_item(session_id, objective)

        logger.info(
            "Generated agenda for session %s: %d objectives", session_id, len(agenda.objectives)
        )
        return self.session_repo.get_session(session_id)

    def set_checklist_item(
        self, item_id: str, user_id: str, completed: bool
    ) -> ChecklistItemORM:
        item = self.session_repo.get_checklist_item(item_id)
        if item is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Checklist item {item_id} not found.",
            )
        self._get_session_for_member(item.session_id, user_id)

        with transaction(self.db):
            item.completed = completed
            item.completed_by = user_id if completed else None
        self.db.refresh(item)
        return item

    def complete_session(
        self, session_id: str, user_id: str, completion: SessionCompleteModel
    ) -> StudySessionORM:
        db_session = self._get_session_for_member(session_id, user_id)
        with transaction(self.db):
            self.session_repo.update_session(
                db_session,
                completed_at=self.clock(),
                checklist_completion_percent=checklist_completion_percent(
                    db_session.checklist_items
                ),
                success_rating=completion.success_rating,
                feedback=completion.feedback,
            )
        return self.session_repo.get_session(session_id)
