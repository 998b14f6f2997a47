# services/group_service.py
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.db import transaction
from app.core.errors import GroupAssemblyFailed
from app.core.settings import Settings, config_settings
from app.models.orm.group import StudyGroupORM
from app.models.schemas.group import GroupCreateModel
from app.models.schemas.matching import AssembledGroup, MatchCandidate, SeedProfile
from app.repositories.group_repo import GroupRepository
from app.repositories.study_session_repo import StudySessionRepository

logger = logging.getLogger(__name__)

FALLBACK_TOPIC = "Study"


def derive_common_topics(
    topic_lists: Iterable[Sequence[str]], min_members: int = 2, limit: int = 5
) -> List[str]:
    """
    Topics listed by at least ``min_members`` members, in first-seen order.

    A member listing the same topic twice still counts once.
    """
    counts: dict[str, int] = {}
    for topics in topic_lists:
        for topic in dict.fromkeys(topics):
            counts[topic] = counts.get(topic, 0) + 1

    return [topic for topic, count in counts.items() if count >= min_members][:limit]


def derive_group_name(common_topics: Sequence[str]) -> str:
    return f"{common_topics[0] if common_topics else FALLBACK_TOPIC} Group"


def first_session_time(now: datetime, hour: int = 18) -> datetime:
    """Tomorrow (relative to ``now``) at ``hour``:00:00.000."""
    return (now + timedelta(days=1)).replace(hour=hour, minute=0, second=0, microsecond=0)


class GroupService:
    def __init__(
        self,
        db: Session,
        settings: Settings = config_settings,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.group_repo = GroupRepository(db)
        self.session_repo = StudySessionRepository(db)
        self.settings = settings
        self.clock = clock

    def assemble_group(
        self,
        seed: SeedProfile,
        candidates: List[MatchCandidate],
        match_count: Optional[int] = None,
    ) -> AssembledGroup:
        """
        Persists a group for the seed and its ranked matches.

        ``match_count`` defaults to the number of candidates placed in the
        group; the matcher passes the size of the whole qualifying pool.

        The group, every membership and the first session are written in one
        transaction; if any insert fails nothing is kept.
        """
        common_topics = derive_common_topics(
            [seed.topics, *(c.topics for c in candidates)],
            limit=self.settings.MAX_COMMON_TOPICS,
        )
        group_name = derive_group_name(common_topics)
        first_topic = common_topics[0] if common_topics else None

        try:
            with transaction(self.db):
                db_group = self.group_repo.create_group(name=group_name, topics=common_topics)

                self.group_repo.add_member(db_group.group_id, seed.user_id)
                for candidate in candidates:
                    self.group_repo.add_member(db_group.group_id, candidate.user_id)

                self.session_repo.create_session(
                    group_id=db_group.group_id,
                    title=f"{group_name} - First Session",
                    scheduled_at=first_session_time(
                        self.clock(), hour=self.settings.FIRST_SESSION_HOUR
                    ),
                    duration=self.settings.FIRST_SESSION_DURATION,
                    topic=first_topic,
                )
                group_id = db_group.group_id
        except SQLAlchemyError as e:
            logger.error("Group assembly for seed %s rolled back: %s", seed.user_id, e)
            raise GroupAssemblyFailed() from e

        logger.info(
            "Created group %s (%r) with %d members", group_id, group_name, len(candidates) + 1
        )
        return AssembledGroup(
            group_id=group_id,
            name=group_name,
            topics=common_topics,
            match_count=len(candidates) if match_count is None else match_count,
        )

    # --- Manual group management ---

    def create_group(self, creator_id: str, group_data: GroupCreateModel) -> StudyGroupORM:
        try:
            with transaction(self.db):
                db_group = self.group_repo.create_group(
                    name=group_data.name, topics=group_data.topics
                )
                self.group_repo.add_member(db_group.group_id, creator_id)
        except IntegrityError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Failed to create group: {str(e).splitlines()[0]}",
            )
        return self.get_group(db_group.group_id)

    def join_group(self, group_id: str, user_id: str) -> StudyGroupORM:
        """Adds ``user_id`` to the group; joining twice is a no-op."""
        self.get_group(group_id)
        if not self.group_repo.is_member(group_id, user_id):
            with transaction(self.db):
                self.group_repo.add_member(group_id, user_id)
            logger.info("User %s joined group %s", user_id, group_id)
        return self.get_group(group_id)

    def get_group(self, group_id: str) -> StudyGroupORM:
        db_group = self.group_repo.get_group_with_members(group_id)
        if db_group is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Group {group_id} not found.",
            )
        return db_group

    def get_groups_for_user(self, user_id: str) -> List[StudyGroupORM]:
        return self.group_repo.get_groups_for_user(user_id)

    def require_membership(self, group_id: str, user_id: str) -> None:
        self.get_group(group_id)
        if not self.group_repo.is_member(group_id, user_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not a member of this group.",
            )

    def is_member(self, group_id: str, user_id: Optional[str]) -> bool:
        return user_id is not None and self.group_repo.is_member(group_id, user_id)
