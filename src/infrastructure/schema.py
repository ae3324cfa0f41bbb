from sqlalchemy import (
    BigInteger, Column, DateTime, ForeignKey, Integer, MetaData, String, Table,
    UniqueConstraint, text,
)
from sqlalchemy.dialects.postgresql import UUID

# SQLAlchemy core Table definitions
metadata = MetaData()


def _id_column() -> Column:
    return Column('id', UUID(as_uuid=False), primary_key=True, server_default=text('gen_random_uuid()'))


def _timestamp_columns() -> list:
    return [
        Column('created_at', DateTime(timezone=True), nullable=False, server_default=text('NOW()')),
        Column('updated_at', DateTime(timezone=True), nullable=False, server_default=text('NOW()')),
        Column('deleted_at', DateTime(timezone=True), nullable=True),
    ]


def _counter(name: str, type_=Integer) -> Column:
    return Column(name, type_, nullable=False, server_default=text('0'))


platforms_table = Table(
    'git_platforms', metadata,
    _id_column(),
    Column('name', String(255), nullable=False, unique=True),
    _counter('clones'),
    _counter('followers'),
    _counter('forks'),
    _counter('stars'),
    _counter('views', BigInteger),
    _counter('watchers'),
    *_timestamp_columns(),
)

accounts_table = Table(
    'git_accounts', metadata,
    _id_column(),
    Column('name', String(255), nullable=False),
    Column('platform_id', UUID(as_uuid=False), ForeignKey('git_platforms.id'), nullable=False),
    _counter('followers'),
    *_timestamp_columns(),
    UniqueConstraint('name', 'platform_id'),
)

repositories_table = Table(
    'git_repositories', metadata,
    _id_column(),
    Column('name', String(255), nullable=False),
    Column('account_id', UUID(as_uuid=False), ForeignKey('git_accounts.id'), nullable=False),
    _counter('clones'),
    _counter('forks'),
    _counter('stars'),
    _counter('subscribers'),
    _counter('views', BigInteger),
    *_timestamp_columns(),
    UniqueConstraint('name', 'account_id'),
)
