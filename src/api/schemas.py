"""Request and response schemas for the CRUD surface."""
from typing import Any, Dict, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.domain.models import Account, Entity, Platform, Repository

E = TypeVar('E', bound=Entity)

# Column ranges: views is BIGINT, every other counter is INTEGER.
INTEGER_MAX = 2**31 - 1
BIGINT_MAX = 2**63 - 1


class _Schema(BaseModel):
    model_config = ConfigDict(extra='forbid')


class _CreateSchema(_Schema):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator('name')
    @classmethod
    def _lowercase(cls, value: str) -> str:
        # Names are stored lower-cased so upstream lookups are consistent.
        return value.strip().lower()


class CreatePlatformSchema(_CreateSchema):
    clones: int = Field(0, ge=0, le=INTEGER_MAX)
    followers: int = Field(0, ge=0, le=INTEGER_MAX)
    forks: int = Field(0, ge=0, le=INTEGER_MAX)
    stars: int = Field(0, ge=0, le=INTEGER_MAX)
    views: int = Field(0, ge=0, le=BIGINT_MAX)
    watchers: int = Field(0, ge=0, le=INTEGER_MAX)

    def to_entity(self) -> Platform:
        return Platform(**self.model_dump())


class CreateAccountSchema(_CreateSchema):
    platform_id: UUID
    followers: int = Field(0, ge=0, le=INTEGER_MAX)

    def to_entity(self) -> Account:
        return Account(name=self.name, platform_id=str(self.platform_id), followers=self.followers)


class CreateRepositorySchema(_CreateSchema):
    account_id: UUID
    clones: int = Field(0, ge=0, le=INTEGER_MAX)
    forks: int = Field(0, ge=0, le=INTEGER_MAX)
    stars: int = Field(0, ge=0, le=INTEGER_MAX)
    subscribers: int = Field(0, ge=0, le=INTEGER_MAX)
    views: int = Field(0, ge=0, le=BIGINT_MAX)

    def to_entity(self) -> Repository:
        return Repository(**self.model_dump(exclude={'account_id'}), account_id=str(self.account_id))


class _UpdateSchema(_Schema):
    def apply(self, entity: E) -> E:
        """Absolute replacement of the counters present in the payload."""
        return entity.model_copy(update=self.model_dump(exclude_none=True))


class UpdatePlatformSchema(_UpdateSchema):
    clones: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    followers: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    forks: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    stars: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    views: Optional[int] = Field(None, ge=0, le=BIGINT_MAX)
    watchers: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)


class UpdateAccountSchema(_UpdateSchema):
    followers: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)


class UpdateRepositorySchema(_UpdateSchema):
    clones: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    forks: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    stars: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    subscribers: Optional[int] = Field(None, ge=0, le=INTEGER_MAX)
    views: Optional[int] = Field(None, ge=0, le=BIGINT_MAX)


def to_output(entity: Entity) -> Dict[str, Any]:
    return entity.model_dump(mode='json')
