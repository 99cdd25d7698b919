"""Tests for the CLI entry point."""

import json
import subprocess
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from reviewdeck_cli.cli import _build_store, main
from reviewdeck_store.memory import MemoryStore
from reviewdeck_store.models import AnalysisResult, Issue, IssueType, ReviewDraft, ReviewStatus
from reviewdeck_store.sqlite import SQLiteStore

REPLY = "Código bem estruturado, mas a senha está hardcoded na linha 3."


def _make_config(github_token="tok", model="anthropic", anthropic_key="ant", openai_key=None, prompts=None):
    return {
        "github_token": github_token,
        "model": model,
        "anthropic_api_key": anthropic_key,
        "openai_api_key": openai_key,
        "store": "memory",
        "store_path": ".reviewdeck.db",
        "window_days": 30,
        "ranking_limit": 5,
        "max_chars_per_file": 20000,
        "prompts": prompts or {},
        "scoring": {},
    }


def _patch_common(mocker, config=None, token="tok"):
    """Patch load_config, resolve_github_token and _build_store; return a live MemoryStore."""
    cfg = config or _make_config()
    mocker.patch("reviewdeck_core.config.load_config", return_value=cfg)
    mocker.patch("reviewdeck_cli.auth.resolve_github_token", return_value=token)
    store = MemoryStore()
    mocker.patch("reviewdeck_cli.cli._build_store", return_value=store)
    return cfg, store


def _fake_backend(mocker, reply=REPLY):
    backend = MagicMock()
    backend.MODEL = "fake-model"
    backend.analyze.return_value = reply
    mocker.patch("reviewdeck_cli.commands.submit.get_analyzer", return_value=backend)
    return backend


@pytest.fixture
def java_file(tmp_path):
    path = tmp_path / "Conta.java"
    path.write_text('public class Conta {\n  String senha = "123";\n}\n')
    return path


def _seed(store, repo="acme/core", dev="ana", file_name="Conta.java", status=ReviewStatus.COMPLETED, score=80, critical=0):
    review = store.create(ReviewDraft(file_name=file_name, repository_id=repo, developer=dev, file_content="x"))
    if status is ReviewStatus.PENDING:
        return review
    if status is ReviewStatus.FAILED:
        return store.update(review.id, {"status": ReviewStatus.FAILED, "error_message": "backend down"})
    store.update(review.id, {"status": ReviewStatus.IN_PROGRESS})
    issues = tuple(Issue(type=IssueType.CRITICAL, message="Hardcoded password", severity=9) for _ in range(critical))
    return store.update(
        review.id,
        {
            "status": ReviewStatus.COMPLETED,
            "analysis_result": AnalysisResult(quality_score=score, issues=issues, raw_review="ok"),
            "completed_at": datetime.now(timezone.utc),
        },
    )


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


class TestSubmitCommand:
    def test_submit_and_analyze(self, mocker, java_file):
        _, store = _patch_common(mocker)
        backend = _fake_backend(mocker)

        result = CliRunner().invoke(main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana"])

        assert result.exit_code == 0, result.output
        (review,) = store.list_reviews()
        assert review.status is ReviewStatus.COMPLETED
        assert review.file_name == "Conta.java"
        assert review.model_id == "fake-model"
        assert "senha" in backend.analyze.call_args.args[0].code
        assert "COMPLETED" in result.output
        assert "Quality score" in result.output

    def test_no_analyze_leaves_pending(self, mocker, java_file):
        _, store = _patch_common(mocker)
        get_analyzer = mocker.patch("reviewdeck_cli.commands.submit.get_analyzer")

        result = CliRunner().invoke(
            main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana", "--no-analyze"]
        )

        assert result.exit_code == 0, result.output
        assert store.list_reviews()[0].status is ReviewStatus.PENDING
        get_analyzer.assert_not_called()

    def test_backend_failure_recorded_not_raised(self, mocker, java_file):
        _, store = _patch_common(mocker)
        _fake_backend(mocker, reply="")

        result = CliRunner().invoke(main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana"])

        assert result.exit_code == 0
        assert store.list_reviews()[0].status is ReviewStatus.FAILED
        assert "FAILED" in result.output

    def test_configured_prompt_sent_to_backend(self, mocker, java_file):
        _patch_common(mocker, config=_make_config(prompts={"maya": "Check empresta/devolve pairs"}))
        backend = _fake_backend(mocker)

        CliRunner().invoke(
            main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana", "--prompt-id", "maya"]
        )

        assert backend.analyze.call_args.args[0].prompt == "Check empresta/devolve pairs"

    def test_unknown_prompt_id_creates_nothing(self, mocker, java_file):
        _, store = _patch_common(mocker)
        _fake_backend(mocker)

        result = CliRunner().invoke(
            main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana", "--prompt-id", "nope"]
        )

        assert result.exit_code != 0
        assert "Unknown review prompt" in result.output
        assert store.list_reviews() == []

    def test_missing_anthropic_key(self, mocker, java_file):
        _, store = _patch_common(mocker, config=_make_config(anthropic_key=None))

        result = CliRunner().invoke(main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana"])

        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output
        assert store.list_reviews() == []

    def test_missing_openai_key(self, mocker, java_file):
        _patch_common(mocker)

        result = CliRunner().invoke(
            main, ["submit", str(java_file), "--repo", "acme/core", "--developer", "ana", "--model", "openai"]
        )

        assert result.exit_code != 0
        assert "OPENAI_API_KEY" in result.output

    def test_blank_developer_is_validation_error(self, mocker, java_file):
        _patch_common(mocker)

        result = CliRunner().invoke(
            main, ["submit", str(java_file), "--repo", "acme/core", "--developer", " ", "--no-analyze"]
        )

        assert result.exit_code != 0
        assert "developer" in result.output


class TestSubmitCommitCommand:
    def _drafts(self):
        return [
            ReviewDraft(file_name="A.java", repository_id="acme/core", developer="ana", file_content="class A {}"),
            ReviewDraft(file_name="B.java", repository_id="acme/core", developer="ana", file_content="class B {}"),
        ]

    def test_one_review_per_file(self, mocker):
        _, store = _patch_common(mocker)
        _fake_backend(mocker)
        get_repo = mocker.patch("reviewdeck_cli.commands.submit.get_repo", return_value=MagicMock())
        commit_drafts = mocker.patch("reviewdeck_cli.commands.submit.commit_drafts", return_value=self._drafts())

        result = CliRunner().invoke(main, ["submit-commit", "--repo", "acme/core", "--sha", "abc1234def"])

        assert result.exit_code == 0, result.output
        get_repo.assert_called_once_with("acme/core", token="tok")
        assert commit_drafts.call_args.args[1] == "abc1234def"
        assert [r.status for r in store.list_reviews()] == [ReviewStatus.COMPLETED, ReviewStatus.COMPLETED]
        assert "abc1234" in result.output

    def test_missing_github_token(self, mocker):
        _patch_common(mocker, config=_make_config(github_token=None), token=None)

        result = CliRunner().invoke(main, ["submit-commit", "--repo", "acme/core", "--sha", "abc"])

        assert result.exit_code != 0
        assert "GITHUB_TOKEN" in result.output

    def test_no_reviewable_files(self, mocker):
        _, store = _patch_common(mocker)
        _fake_backend(mocker)
        mocker.patch("reviewdeck_cli.commands.submit.get_repo", return_value=MagicMock())
        mocker.patch("reviewdeck_cli.commands.submit.commit_drafts", return_value=[])

        result = CliRunner().invoke(main, ["submit-commit", "--repo", "acme/core", "--sha", "abc1234"])

        assert result.exit_code == 0
        assert "No reviewable source files" in result.output
        assert store.list_reviews() == []


# ---------------------------------------------------------------------------
# reviews / show / retry / delete
# ---------------------------------------------------------------------------


class TestReviewsCommand:
    def test_shows_table(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store)

        result = CliRunner().invoke(main, ["reviews"])

        assert result.exit_code == 0
        assert review.id[:8] in result.output
        assert "COMPLETED" in result.output

    def test_empty_message(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["reviews"])
        assert result.exit_code == 0
        assert "No reviews found" in result.output

    def test_filters_by_status_and_repo(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, repo="acme/core", status=ReviewStatus.FAILED)
        _seed(store, repo="acme/core")
        _seed(store, repo="acme/web", status=ReviewStatus.FAILED)

        result = CliRunner().invoke(main, ["reviews", "--repo", "acme/core", "--status", "failed", "--json"])

        payload = json.loads(result.output)
        assert len(payload) == 1
        assert payload[0]["status"] == "FAILED"
        assert payload[0]["repository_id"] == "acme/core"
        assert "file_content" not in payload[0]

    def test_limit_applied(self, mocker):
        _, store = _patch_common(mocker)
        for i in range(10):
            _seed(store, file_name=f"F{i}.java")

        result = CliRunner().invoke(main, ["reviews", "--limit", "3", "--json"])

        assert len(json.loads(result.output)) == 3


class TestShowCommand:
    def test_shows_issues_and_suggestions(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store, critical=1)

        result = CliRunner().invoke(main, ["show", review.id])

        assert result.exit_code == 0
        assert "Hardcoded password" in result.output
        assert "CRITICAL" in result.output

    def test_accepts_id_prefix(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store)

        result = CliRunner().invoke(main, ["show", review.id[:8], "--json"])

        assert json.loads(result.output)["id"] == review.id

    def test_unknown_id(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["show", "doesnotexist"])
        assert result.exit_code != 0
        assert "not found" in result.output


class TestRetryCommand:
    def test_retry_failed_review(self, mocker):
        _, store = _patch_common(mocker)
        _fake_backend(mocker)
        review = _seed(store, status=ReviewStatus.FAILED)

        result = CliRunner().invoke(main, ["retry", review.id])

        assert result.exit_code == 0, result.output
        retried = store.get(review.id)
        assert retried.status is ReviewStatus.COMPLETED
        assert retried.error_message is None
        assert len(store.list_reviews()) == 1

    def test_retry_without_analysis(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store, status=ReviewStatus.FAILED)

        CliRunner().invoke(main, ["retry", review.id, "--no-analyze"])

        assert store.get(review.id).status is ReviewStatus.PENDING

    def test_retry_completed_is_rejected(self, mocker):
        _, store = _patch_common(mocker)
        _fake_backend(mocker)
        review = _seed(store)

        result = CliRunner().invoke(main, ["retry", review.id])

        assert result.exit_code != 0
        assert "Invalid transition" in result.output
        assert store.get(review.id).status is ReviewStatus.COMPLETED

    def test_retry_with_removed_prompt_stays_failed(self, mocker):
        _, store = _patch_common(mocker)
        backend = _fake_backend(mocker)
        review = store.create(
            ReviewDraft(file_name="Conta.java", repository_id="acme/core", developer="ana", file_content="x", review_prompt_id="gone")
        )
        store.update(review.id, {"status": ReviewStatus.FAILED, "error_message": "backend down"})

        result = CliRunner().invoke(main, ["retry", review.id])

        assert result.exit_code != 0
        assert "Unknown review prompt" in result.output
        failed = store.get(review.id)
        assert failed.status is ReviewStatus.FAILED
        assert failed.error_message == "backend down"
        backend.analyze.assert_not_called()


class TestDeleteCommand:
    def test_delete_with_yes(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store)

        result = CliRunner().invoke(main, ["delete", review.id, "--yes"])

        assert result.exit_code == 0
        assert store.list_reviews() == []

    def test_declined_confirmation_keeps_review(self, mocker):
        _, store = _patch_common(mocker)
        review = _seed(store)

        result = CliRunner().invoke(main, ["delete", review.id], input="n\n")

        assert result.exit_code != 0
        assert len(store.list_reviews()) == 1

    def test_delete_unknown_is_noop(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["delete", "nope", "--yes"])
        assert result.exit_code == 0
        assert "nothing to delete" in result.output


# ---------------------------------------------------------------------------
# dashboard commands
# ---------------------------------------------------------------------------


class TestDashboardCommands:
    def test_dashboard_overview(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, score=90, critical=2)
        _seed(store, score=70)
        _seed(store, status=ReviewStatus.PENDING)

        result = CliRunner().invoke(main, ["dashboard"])

        assert result.exit_code == 0
        assert "Total reviews:         3" in result.output
        assert "Average quality score: 80.0" in result.output
        assert "Critical issues:       2" in result.output
        assert "66.7%" in result.output
        assert "excellent" in result.output

    def test_repository_ranking(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, repo="alpha", score=92)
        _seed(store, repo="beta", score=88)
        _seed(store, repo="gamma", score=95)

        result = CliRunner().invoke(main, ["ranking", "repos", "--limit", "2"])

        assert result.exit_code == 0
        assert result.output.index("gamma") < result.output.index("alpha")
        assert "beta" not in result.output

    def test_developer_ranking(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, dev="ana", score=90)
        _seed(store, dev="bruno", score=70)

        result = CliRunner().invoke(main, ["ranking", "developers"])

        assert "Improvement" in result.output
        assert result.output.index("ana") < result.output.index("bruno")

    def test_ranking_empty(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["ranking", "repos"])
        assert "No completed reviews" in result.output

    def test_trends(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, score=80)

        result = CliRunner().invoke(main, ["trends", "--period", "weekly"])

        assert result.exit_code == 0
        assert "Week of" in result.output
        assert "80.0" in result.output

    def test_issues(self, mocker):
        _, store = _patch_common(mocker)
        _seed(store, file_name="Auth.java", critical=2)

        result = CliRunner().invoke(main, ["issues"])

        assert result.exit_code == 0
        assert "Total issues: 2" in result.output
        assert "Hardcoded password" in result.output
        assert "Auth.java" in result.output

    def test_invalid_days_rejected(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["dashboard", "--days", "0"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# auth.py
# ---------------------------------------------------------------------------


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from reviewdeck_cli.auth import resolve_github_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_github_token() == "env-token"

    def test_falls_back_to_gh_cli(self, monkeypatch):
        from reviewdeck_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            assert resolve_github_token() == "gh-token"

    @pytest.mark.parametrize(
        "side_effect",
        [FileNotFoundError, subprocess.TimeoutExpired(cmd="gh", timeout=5)],
    )
    def test_returns_none_when_gh_unavailable(self, monkeypatch, side_effect):
        from reviewdeck_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=side_effect):
            assert resolve_github_token() is None

    @pytest.mark.parametrize("returncode,stdout", [(1, ""), (0, "   ")])
    def test_returns_none_when_gh_gives_nothing(self, monkeypatch, returncode, stdout):
        from reviewdeck_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=returncode, stdout=stdout)
            assert resolve_github_token() is None


# ---------------------------------------------------------------------------
# _build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_returns_sqlite_by_default(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store = _build_store({})
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_returns_sqlite_store_at_path(self, tmp_path):
        store = _build_store({"store": "sqlite", "store_path": str(tmp_path / "test.db")})
        assert isinstance(store, SQLiteStore)
        store.close()
        assert (tmp_path / "test.db").exists()

    def test_returns_memory_store(self):
        assert isinstance(_build_store({"store": "memory"}), MemoryStore)

    def test_unknown_store_rejected(self):
        import click

        with pytest.raises(click.UsageError, match="Unknown store"):
            _build_store({"store": "gist"})


def test_reviews_since_filters_by_age(mocker):
    cfg = _make_config()
    mocker.patch("reviewdeck_core.config.load_config", return_value=cfg)
    mocker.patch("reviewdeck_cli.auth.resolve_github_token", return_value="tok")
    old = datetime.now(timezone.utc) - timedelta(days=10)
    store = MemoryStore(clock=lambda: old)
    mocker.patch("reviewdeck_cli.cli._build_store", return_value=store)
    _seed(store)

    result = CliRunner().invoke(main, ["reviews", "--since", "7", "--json"])

    assert json.loads(result.output) == []
