# services/matching_service.py
import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.errors import (
    EmbeddingServiceUnavailable,
    NoCandidates,
    NoMatches,
    ProfileIncomplete,
)
from app.core.settings import Settings, config_settings
from app.models.schemas.matching import (
    AssembledGroup,
    MatchCandidate,
    MatchRun,
    SeedProfile,
)
from app.repositories.user_repo import UserRepository
from app.services.embedding_service import EmbeddingProvider
from app.services.group_service import GroupService
from app.services.similarity import cosine_similarity, is_usable_score

logger = logging.getLogger(__name__)


def topics_text(topics: Sequence[str]) -> str:
    """The text embedded for a user: topics space-joined in their stored order."""
    return " ".join(topics)


def rank_candidates(candidates: List[MatchCandidate], limit: int) -> List[MatchCandidate]:
    """
    Highest score first. Equal scores fall back to user id so the ranking
    never depends on the order in which embedding calls completed.
    """
    ranked = sorted(candidates, key=lambda c: (-c.score, c.user_id))
    return ranked[:limit]


class MatchingService:
    def __init__(
        self,
        db: Session,
        embedder: EmbeddingProvider,
        settings: Settings = config_settings,
    ):
        self.user_repo = UserRepository(db)
        self.group_service = GroupService(db, settings=settings)
        self.embedder = embedder
        self.settings = settings

    async def find_matches(self, seed_user_id: str) -> MatchRun:
        """
        Scores every eligible user against the seed and returns the best few.

        1. Seed must exist with at least one topic (ProfileIncomplete).
        2. At least one other user must have topics (NoCandidates).
        3. The seed embedding must succeed (EmbeddingServiceUnavailable).
        4. Candidates are embedded with bounded concurrency; one failing
           candidate is logged and skipped, never aborting the run.
        5. Scores strictly above the threshold qualify (NoMatches if none).
        """
        seed, pool = await run_in_threadpool(self._load_profiles, seed_user_id)

        try:
            seed_vector = await self.embedder.embed(topics_text(seed.topics))
        except Exception as e:
            logger.error("Seed embedding failed for user %s: %s", seed_user_id, e)
            if isinstance(e, EmbeddingServiceUnavailable):
                raise
            raise EmbeddingServiceUnavailable() from e

        semaphore = asyncio.Semaphore(max(1, self.settings.EMBEDDING_CONCURRENCY))
        results = await asyncio.gather(
            *(self._score_candidate(profile, seed_vector, semaphore) for profile in pool)
        )

        qualified = [
            match
            for match in results
            if match is not None and match.score > self.settings.MATCH_THRESHOLD
        ]
        logger.info(
            "Match run for %s: %d candidates, %d scored, %d qualified",
            seed_user_id,
            len(pool),
            sum(1 for r in results if r is not None),
            len(qualified),
        )
        if not qualified:
            raise NoMatches()

        selected = rank_candidates(qualified, limit=self.settings.MAX_GROUP_SIZE - 1)
        return MatchRun(seed=seed, selected=selected, qualified_count=len(qualified))

    def _load_profiles(self, seed_user_id: str) -> Tuple[SeedProfile, List[SeedProfile]]:
        seed_user = self.user_repo.get_user(seed_user_id)
        if seed_user is None or not seed_user.topics:
            raise ProfileIncomplete()

        seed = SeedProfile(user_id=seed_user.user_id, topics=list(seed_user.topics))

        # Plain data only from here on; nothing after this touches the ORM session
        pool = [
            SeedProfile(user_id=user.user_id, topics=list(user.topics))
            for user in self.user_repo.get_match_candidates(exclude_user_id=seed_user_id)
        ]
        if not pool:
            raise NoCandidates()

        return seed, pool

    async def _score_candidate(
        self,
        profile: SeedProfile,
        seed_vector: List[float],
        semaphore: asyncio.Semaphore,
    ) -> Optional[MatchCandidate]:
        async with semaphore:
            try:
                vector = await self.embedder.embed(topics_text(profile.topics))
                score = cosine_similarity(seed_vector, vector)
            except Exception as e:
                logger.warning("Skipping candidate %s: %s", profile.user_id, e)
                return None

        if not is_usable_score(score):
            logger.warning("Skipping candidate %s: non-finite similarity", profile.user_id)
            return None

        return MatchCandidate(user_id=profile.user_id, topics=profile.topics, score=score)

    async def find_and_assemble(self, user_id: str) -> AssembledGroup:
        """
        Runs a match pass for ``user_id`` and persists the resulting group.

        The reported match count is every candidate that cleared the
        threshold, even those left out of the capped group.
        """
        match_run = await self.find_matches(user_id)
        return await run_in_threadpool(
            self.group_service.assemble_group,
            match_run.seed,
            match_run.selected,
            match_count=match_run.qualified_count,
        )
