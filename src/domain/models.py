from datetime import datetime
from typing import Iterable, Optional
from pydantic import BaseModel, Field, ConfigDict

from src.domain.metrics import OrgStats, RepoStats, TrafficCount


class Entity(BaseModel):
    """
    Fields shared by every tracked entity.

    Identity and timestamps are assigned by the database, so they are empty
    until the entity has been persisted.
    """
    # Enforces immutability: merges and edits produce new instances.
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="Server-generated UUID")
    name: str = Field(..., min_length=1, description="Lower-cased name")
    created_at: Optional[datetime] = Field(None, description="Set on insert")
    updated_at: Optional[datetime] = Field(None, description="Refreshed on every write")
    deleted_at: Optional[datetime] = Field(None, description="Set once on soft delete")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Platform(Entity):
    """A git hosting platform, e.g. github."""
    clones: int = Field(0, ge=0)
    followers: int = Field(0, ge=0)
    forks: int = Field(0, ge=0)
    stars: int = Field(0, ge=0)
    views: int = Field(0, ge=0, description="Stored as BIGINT")
    watchers: int = Field(0, ge=0)

    def aggregate(self, accounts: Iterable["Account"], repositories: Iterable["Repository"]) -> "Platform":
        """
        Recompute every counter as a fold over live children.

        Followers come from accounts; the remaining counters are summed over
        repositories, with watchers taken from repository subscribers.
        Soft-deleted children are ignored.
        """
        live_accounts = [a for a in accounts if not a.is_deleted]
        live_repos = [r for r in repositories if not r.is_deleted]
        return self.model_copy(update={
            'followers': sum(a.followers for a in live_accounts),
            'clones': sum(r.clones for r in live_repos),
            'forks': sum(r.forks for r in live_repos),
            'stars': sum(r.stars for r in live_repos),
            'views': sum(r.views for r in live_repos),
            'watchers': sum(r.subscribers for r in live_repos),
        })


class Account(Entity):
    """An account (user or organization) on a platform."""
    platform_id: str = Field(..., description="Owning platform UUID")
    followers: int = Field(0, ge=0)

    def merge_org_stats(self, stats: OrgStats) -> "Account":
        return self.model_copy(update={'followers': self.followers + stats.followers})


class Repository(Entity):
    """A repository owned by an account."""
    account_id: str = Field(..., description="Owning account UUID")
    clones: int = Field(0, ge=0)
    forks: int = Field(0, ge=0)
    stars: int = Field(0, ge=0)
    subscribers: int = Field(0, ge=0)
    views: int = Field(0, ge=0, description="Stored as BIGINT")

    # Merges accumulate newly observed counts onto the stored ones. Direct
    # edits through the API replace values instead and never go through here.
    def merge_repo_stats(self, stats: RepoStats) -> "Repository":
        return self.model_copy(update={
            'forks': self.forks + stats.forks_count,
            'stars': self.stars + stats.stargazers_count,
            'subscribers': self.subscribers + stats.subscribers_count,
        })

    def merge_clones(self, traffic: TrafficCount) -> "Repository":
        return self.model_copy(update={'clones': self.clones + traffic.count})

    def merge_views(self, traffic: TrafficCount) -> "Repository":
        return self.model_copy(update={'views': self.views + traffic.count})
