# repositories/message_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app.models.orm.message import MessageORM


class MessageRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_message(self, group_id: str, user_id: str, content: str) -> MessageORM:
        db_message = MessageORM(group_id=group_id, user_id=user_id, content=content)
        self.db.add(db_message)
        self.db.flush()
        return db_message

    def get_messages_for_group(self, group_id: str) -> list[MessageORM]:
        """Chat history in send order, with the author eagerly loaded."""
        stmt = (
            select(MessageORM)
            .where(MessageORM.group_id == group_id)
            .order_by(MessageORM.created_at.asc())
            .options(joinedload(MessageORM.user))
        )
        return list(self.db.scalars(stmt).all())
