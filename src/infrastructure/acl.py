from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from src.domain.exceptions import DecodeError
from src.domain.metrics import OrgStats, RepoStats, TrafficCount

R = TypeVar('R', bound=BaseModel)


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON bodies into domain metric records.
    Unknown keys are ignored; a missing or mistyped required key is a DecodeError.
    """

    @staticmethod
    def _decode(record_type: Type[R], raw: Any) -> R:
        if not isinstance(raw, dict):
            raise DecodeError(f"Expected a JSON object for {record_type.__name__}, got {type(raw).__name__}")
        try:
            return record_type.model_validate(raw)
        except ValidationError as e:
            raise DecodeError(f"Invalid {record_type.__name__} payload: {e}") from e

    @staticmethod
    def to_repo_stats(raw: Any) -> RepoStats:
        """
        Transforms a /repos/{owner}/{repo} body into RepoStats.

        Args:
            raw (Any): The decoded JSON body.

        Returns:
            RepoStats: stargazers, forks and subscribers counts.
        """
        return GitHubTranslator._decode(RepoStats, raw)

    @staticmethod
    def to_traffic(raw: Any) -> TrafficCount:
        """Transforms a traffic/clones or traffic/views body into TrafficCount."""
        return GitHubTranslator._decode(TrafficCount, raw)

    @staticmethod
    def to_org_stats(raw: Any) -> OrgStats:
        return GitHubTranslator._decode(OrgStats, raw)
