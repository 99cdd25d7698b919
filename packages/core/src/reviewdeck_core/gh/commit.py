"""GitHub repository connector: turns one commit into review drafts.

Only the narrow contract the core needs lives here (repository id, branch,
developer, commit metadata, file content). Authentication and sync are the
caller's concern; the token is passed in.
"""

from __future__ import annotations

import logging
import posixpath

from github import Github, GithubException

from reviewdeck_store.models import ReviewDraft

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = {
    ".java",
    ".kt",
    ".py",
    ".js",
    ".jsx",
    ".ts",
    ".tsx",
    ".cs",
    ".go",
    ".rb",
    ".php",
    ".sql",
    ".scala",
    ".c",
    ".cpp",
    ".h",
}


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_commit(repo, sha: str):
    return repo.get_commit(sha)


def is_reviewable(file_name: str) -> bool:
    return posixpath.splitext(file_name.lower())[1] in SOURCE_EXTENSIONS


def commit_author(commit) -> str:
    """Prefer the GitHub login; fall back to the git author name."""
    if commit.author is not None and commit.author.login:
        return commit.author.login
    git_author = commit.commit.author
    return (git_author.name if git_author else "") or "unknown"


def commit_drafts(repo, sha: str, branch: str | None = None, review_prompt_id: str | None = None) -> list[ReviewDraft]:
    """Build one ReviewDraft per added or modified source file in ``sha``.

    Files whose content cannot be fetched are skipped with a warning rather
    than aborting the whole commit.
    """
    commit = get_commit(repo, sha)
    developer = commit_author(commit)
    title = (commit.commit.message or "").splitlines()[0] if commit.commit.message else ""
    branch = branch or repo.default_branch

    drafts = []
    for f in commit.files:
        if f.status == "removed" or not is_reviewable(f.filename):
            logger.debug("Skipping %s (%s)", f.filename, f.status)
            continue
        try:
            content = repo.get_contents(f.filename, ref=sha).decoded_content.decode("utf-8", errors="replace")
        except GithubException as e:
            logger.warning("Could not fetch %s at %s: %s", f.filename, sha[:7], e)
            continue
        drafts.append(
            ReviewDraft(
                file_name=posixpath.basename(f.filename),
                file_path=f.filename,
                repository_id=repo.full_name,
                developer=developer,
                file_content=content,
                commit_sha=sha,
                branch=branch,
                title=title,
                review_prompt_id=review_prompt_id,
            )
        )
    return drafts
