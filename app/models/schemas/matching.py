from dataclasses import dataclass, field
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class MatchCandidate:
    """A candidate that cleared the similarity threshold for a seed user."""

    user_id: str
    topics: List[str]
    score: float


@dataclass(frozen=True)
class SeedProfile:
    user_id: str
    topics: List[str]


@dataclass
class MatchRun:
    """Outcome of one matching pass: the ranked selection and the pool size."""

    seed: SeedProfile
    selected: List[MatchCandidate] = field(default_factory=list)
    qualified_count: int = 0


@dataclass(frozen=True)
class AssembledGroup:
    group_id: str
    name: str
    topics: List[str]
    match_count: int


class MatchResponseModel(BaseModel):
    """Wire shape returned by the matching command: ``{groupId, matchCount}``."""

    group_id: str = Field(..., description="The newly created study group.")
    match_count: int = Field(..., description="Candidates that cleared the similarity threshold.")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
