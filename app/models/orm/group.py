from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, PrimaryKeyConstraint, String
from sqlalchemy.orm import relationship

from .base import JSON_TYPE, Base, new_id


# --- Study Group Model ---
class StudyGroupORM(Base):
    __tablename__ = "study_groups"

    group_id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    topics = Column(JSON_TYPE, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Members in join order
    members = relationship(
        "GroupMemberORM",
        back_populates="group",
        order_by="GroupMemberORM.position",
        cascade="all, delete-orphan",
    )
    sessions = relationship(
        "StudySessionORM", back_populates="group", cascade="all, delete-orphan"
    )
    messages = relationship(
        "MessageORM", back_populates="group", cascade="all, delete-orphan"
    )


# --- Membership edge (never mutated once written) ---
class GroupMemberORM(Base):
    __tablename__ = "group_members"

    group_id = Column(
        String, ForeignKey("study_groups.group_id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Insertion order within the group: seed first, then ranked matches
    position = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("group_id", "user_id", name="group_member_pk"),)

    group = relationship("StudyGroupORM", back_populates="members")
    user = relationship("UserORM", back_populates="memberships")
