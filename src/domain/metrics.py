from pydantic import BaseModel, ConfigDict, Field


class _UpstreamRecord(BaseModel):
    # Unknown keys in upstream payloads are dropped; missing ones fail validation.
    model_config = ConfigDict(frozen=True, extra="ignore")


class RepoStats(_UpstreamRecord):
    """Counters reported by the repository endpoint."""
    stargazers_count: int = Field(..., ge=0)
    forks_count: int = Field(..., ge=0)
    subscribers_count: int = Field(..., ge=0)


class TrafficCount(_UpstreamRecord):
    """Total reported by the clones/views traffic endpoints."""
    count: int = Field(..., ge=0)


class OrgStats(_UpstreamRecord):
    """Counters reported by the organization endpoint."""
    followers: int = Field(..., ge=0)
