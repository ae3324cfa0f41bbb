import unittest

from src.domain.exceptions import DecodeError
from src.infrastructure.acl import GitHubTranslator


class TestGitHubTranslator(unittest.TestCase):
    def test_repo_stats_ignore_unknown_fields(self) -> None:
        raw = {
            "id": 1296269,
            "full_name": "octocat/Hello-World",
            "stargazers_count": 80,
            "forks_count": 9,
            "subscribers_count": 42,
            "owner": {"login": "octocat"},
            "topics": ["octocat", "api"],
        }

        stats = GitHubTranslator.to_repo_stats(raw)

        self.assertEqual((stats.stargazers_count, stats.forks_count, stats.subscribers_count), (80, 9, 42))
        self.assertFalse(hasattr(stats, "full_name"))

    def test_traffic_ignores_daily_breakdown(self) -> None:
        raw = {
            "count": 173,
            "uniques": 128,
            "clones": [{"timestamp": "2016-10-10T00:00:00Z", "count": 2, "uniques": 1}],
        }

        self.assertEqual(GitHubTranslator.to_traffic(raw).count, 173)

    def test_org_stats_ignore_unknown_fields(self) -> None:
        raw = {"login": "github", "followers": 20, "public_repos": 2}

        self.assertEqual(GitHubTranslator.to_org_stats(raw).followers, 20)

    def test_missing_required_field_raises(self) -> None:
        raw = {"stargazers_count": 80, "forks_count": 9}

        with self.assertRaises(DecodeError):
            GitHubTranslator.to_repo_stats(raw)

    def test_non_object_body_raises(self) -> None:
        with self.assertRaises(DecodeError):
            GitHubTranslator.to_traffic([{"count": 1}])

    def test_wrong_type_raises(self) -> None:
        with self.assertRaises(DecodeError):
            GitHubTranslator.to_org_stats({"followers": "many"})
