# repositories/study_session_repo.py
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models.orm.study_session import ChecklistItemORM, StudySessionORM


class StudySessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_session(
        self,
        group_id: str,
        title: str,
        scheduled_at: datetime,
        duration: int,
        topic: Optional[str] = None,
    ) -> StudySessionORM:
        db_session = StudySessionORM(
            group_id=group_id,
            title=title,
            scheduled_at=scheduled_at,
            duration=duration,
            topic=topic,
        )
        self.db.add(db_session)
        self.db.flush()
        return db_session

    def get_session(self, session_id: str) -> Optional[StudySessionORM]:
        """Loads a session with its group and checklist in one round trip."""
        stmt = (
            select(StudySessionORM)
            .where(StudySessionORM.session_id == session_id)
            .options(
                joinedload(StudySessionORM.group),
                selectinload(StudySessionORM.checklist_items),
            )
        )
        return self.db.scalars(stmt).unique().one_or_none()

    def update_session(self, db_session: StudySessionORM, **fields) -> StudySessionORM:
        for key, value in fields.items():
            setattr(db_session, key, value)
        self.db.flush()
        return db_session

    def get_sessions_for_group(self, group_id: str) -> list[StudySessionORM]:
        stmt = (
            select(StudySessionORM)
            .where(StudySessionORM.group_id == group_id)
            .order_by(StudySessionORM.scheduled_at.desc())
            .options(selectinload(StudySessionORM.checklist_items))
        )
        return list(self.db.scalars(stmt).all())

    def get_upcoming_sessions(
        self, group_ids: list[str], now: datetime
    ) -> list[StudySessionORM]:
        if not group_ids:
            return []
        stmt = (
            select(StudySessionORM)
            .where(
                StudySessionORM.group_id.in_(group_ids),
                StudySessionORM.scheduled_at >= now,
            )
            .order_by(StudySessionORM.scheduled_at.asc())
            .options(selectinload(StudySessionORM.checklist_items))
        )
        return list(self.db.scalars(stmt).all())

    # --- Checklist ---

    def create_checklist_item(self, session_id: str, content: str) -> ChecklistItemORM:
        item = ChecklistItemORM(session_id=session_id, content=content, completed=False)
        self.db.add(item)
        self.db.flush()
        return item

    def get_checklist_item(self, item_id: str) -> Optional[ChecklistItemORM]:
        return self.db.get(ChecklistItemORM, item_id)
