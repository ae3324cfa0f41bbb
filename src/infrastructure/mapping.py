"""
Entity mapping registry.

Each persisted entity type is described once by an EntityMapping: where it
lives, which columns are written on insert and update, how to turn an entity
into ordered statement parameters, and how to decode a result row. The
persistence layer is written against this descriptor only.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Mapping, Tuple, Type, TypeVar

from sqlalchemy import Table

from src.domain.models import Account, Entity, Platform, Repository
from src.infrastructure.schema import accounts_table, platforms_table, repositories_table

T = TypeVar('T', bound=Entity)

Row = Mapping[str, Any]


@dataclass(frozen=True)
class EntityMapping(Generic[T]):
    entity_type: Type[T]
    table: Table
    columns: Tuple[str, ...]
    update_assignments: Tuple[str, ...]
    to_params: Callable[[T], Tuple[Any, ...]]
    from_row: Callable[[Row], T]

    @property
    def table_name(self) -> str:
        return self.table.name

    def insert_values(self, entity: T) -> Dict[str, Any]:
        """Pairs the descriptor's columns with the entity's ordered parameters."""
        return dict(zip(self.columns, self.to_params(entity)))

    def update_values(self, entity: T) -> Dict[str, Any]:
        values = self.insert_values(entity)
        return {column: values[column] for column in self.update_assignments}


def _common(row: Row) -> Dict[str, Any]:
    return {
        'id': str(row['id']),
        'name': row['name'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at'],
        # NULL stays None; there is no sentinel for "not deleted"
        'deleted_at': row['deleted_at'],
    }


def _platform_from_row(row: Row) -> Platform:
    return Platform(
        **_common(row),
        clones=row['clones'],
        followers=row['followers'],
        forks=row['forks'],
        stars=row['stars'],
        views=row['views'],
        watchers=row['watchers'],
    )


def _account_from_row(row: Row) -> Account:
    return Account(
        **_common(row),
        platform_id=str(row['platform_id']),
        followers=row['followers'],
    )


def _repository_from_row(row: Row) -> Repository:
    return Repository(
        **_common(row),
        account_id=str(row['account_id']),
        clones=row['clones'],
        forks=row['forks'],
        stars=row['stars'],
        subscribers=row['subscribers'],
        views=row['views'],
    )


PLATFORMS: EntityMapping[Platform] = EntityMapping(
    entity_type=Platform,
    table=platforms_table,
    columns=('name', 'clones', 'followers', 'forks', 'stars', 'views', 'watchers'),
    update_assignments=('name', 'clones', 'followers', 'forks', 'stars', 'views', 'watchers'),
    to_params=lambda p: (p.name, p.clones, p.followers, p.forks, p.stars, p.views, p.watchers),
    from_row=_platform_from_row,
)

ACCOUNTS: EntityMapping[Account] = EntityMapping(
    entity_type=Account,
    table=accounts_table,
    columns=('name', 'platform_id', 'followers'),
    update_assignments=('name', 'platform_id', 'followers'),
    to_params=lambda a: (a.name, a.platform_id, a.followers),
    from_row=_account_from_row,
)

REPOSITORIES: EntityMapping[Repository] = EntityMapping(
    entity_type=Repository,
    table=repositories_table,
    columns=('name', 'account_id', 'clones', 'forks', 'stars', 'subscribers', 'views'),
    update_assignments=('name', 'account_id', 'clones', 'forks', 'stars', 'subscribers', 'views'),
    to_params=lambda r: (r.name, r.account_id, r.clones, r.forks, r.stars, r.subscribers, r.views),
    from_row=_repository_from_row,
)

_REGISTRY: Dict[type, EntityMapping] = {m.entity_type: m for m in (PLATFORMS, ACCOUNTS, REPOSITORIES)}


def mapping_for(entity_type: Type[T]) -> EntityMapping[T]:
    """Looks up the descriptor for an entity type. Raises KeyError if unmapped."""
    return _REGISTRY[entity_type]
