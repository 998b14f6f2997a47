# repositories/group_repo.py
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models.orm.group import GroupMemberORM, StudyGroupORM


class GroupRepository:
    """
    Storage operations for groups and memberships.

    Writes are flushed, never committed: callers wrap them in
    ``app.core.db.transaction`` so that a group and its members land together.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_group(self, name: str, topics: list[str]) -> StudyGroupORM:
        db_group = StudyGroupORM(name=name, topics=list(topics))
        self.db.add(db_group)
        self.db.flush()
        return db_group

    def add_member(self, group_id: str, user_id: str) -> GroupMemberORM:
        position = self.db.scalar(
            select(func.count())
            .select_from(GroupMemberORM)
            .where(GroupMemberORM.group_id == group_id)
        )
        db_member = GroupMemberORM(
            group_id=group_id,
            user_id=user_id,
            position=position or 0,
            joined_at=datetime.utcnow(),
        )
        self.db.add(db_member)
        self.db.flush()
        return db_member

    def is_member(self, group_id: str, user_id: str) -> bool:
        return self.db.get(GroupMemberORM, (group_id, user_id)) is not None

    def get_group_with_members(self, group_id: str) -> Optional[StudyGroupORM]:
        """
        Fetches a single group and eagerly loads its members and their users,
        preventing an N+1 query per member.
        """
        stmt = (
            select(StudyGroupORM)
            .where(StudyGroupORM.group_id == group_id)
            .options(joinedload(StudyGroupORM.members).joinedload(GroupMemberORM.user))
        )
        return self.db.scalars(stmt).unique().one_or_none()

    def get_groups_for_user(self, user_id: str) -> list[StudyGroupORM]:
        member_of = select(GroupMemberORM.group_id).where(GroupMemberORM.user_id == user_id)
        stmt = (
            select(StudyGroupORM)
            .where(StudyGroupORM.group_id.in_(member_of))
            .order_by(StudyGroupORM.created_at.desc())
            .options(selectinload(StudyGroupORM.members).selectinload(GroupMemberORM.user))
        )
        return list(self.db.scalars(stmt).all())

    def get_group_ids_for_user(self, user_id: str) -> list[str]:
        stmt = select(GroupMemberORM.group_id).where(GroupMemberORM.user_id == user_id)
        return list(self.db.scalars(stmt).all())
