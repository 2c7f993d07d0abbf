"""Pull request data via the GitHub CLI (``gh``)."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from loguru import logger

from squadron.constants import GEMINI_REVIEW_COMMAND
from squadron.core.command_log import COMMAND_LOG
from squadron.core.errors import PullRequestError


class CommentKind(str, Enum):
    REVIEW = "review"
    REVIEW_COMMENT = "review_comment"
    ISSUE_COMMENT = "issue_comment"


@dataclass
class PRComment:
    id: int
    kind: CommentKind
    author: str
    body: str
    path: str = ""
    line: int = 0
    created_at: str = ""
    is_outdated: bool = False
    is_resolved: bool = False
    is_gemini_review: bool = False
    accepted: bool = False

    @property
    def hidden_by_default(self) -> bool:
        return self.is_outdated or self.is_resolved or self.is_gemini_review


@dataclass
class PullRequest:
    number: int
    title: str
    state: str
    head_ref: str
    base_ref: str
    url: str
    head_sha: str
    all_comments: list[PRComment] = field(default_factory=list)

    @property
    def comments(self) -> list[PRComment]:
        """Comments shown by default: not outdated, resolved or a bot review trigger."""
        return [c for c in self.all_comments if not c.hidden_by_default]

    def accepted_comments(self) -> list[PRComment]:
        return [c for c in self.all_comments if c.accepted]

    def fetch_comments(self, working_dir: str) -> None:
        """Replace ``all_comments`` with a fresh fetch of reviews, review comments and issue comments."""
        try:
            resolved = self._fetch_resolved_status(working_dir)
        except PullRequestError as e:
            logger.warning(f"Could not fetch resolved status for PR #{self.number}: {e}")
            resolved = {}

        # {owner}/{repo} placeholders are expanded by gh itself
        pulls = f"repos/{{owner}}/{{repo}}/pulls/{self.number}"
        issues = f"repos/{{owner}}/{{repo}}/issues/{self.number}"
        comments: list[PRComment] = []
        comments.extend(parse_reviews(_gh_json(["api", f"{pulls}/reviews"], working_dir), self.head_sha))
        comments.extend(
            parse_review_comments(_gh_json(["api", f"{pulls}/comments"], working_dir), self.head_sha, resolved)
        )
        comments.extend(parse_issue_comments(_gh_json(["api", f"{issues}/comments"], working_dir)))
        comments.sort(key=lambda c: c.created_at)
        self.all_comments = comments
        logger.info(f"Fetched {len(comments)} comments for PR #{self.number} ({len(self.comments)} shown)")

    def _fetch_resolved_status(self, working_dir: str) -> dict[int, bool]:
        repo = _gh_json(["repo", "view", "--json", "owner,name"], working_dir)
        if not isinstance(repo, dict):
            raise PullRequestError("unexpected repository info")
        owner = repo.get("owner", {}).get("login", "")
        name = repo.get("name", "")
        query = (
            f'{{ repository(owner: "{owner}", name: "{name}") {{ pullRequest(number: {self.number}) {{ '
            "reviewThreads(first: 100) { nodes { isResolved comments(first: 1) { nodes { databaseId } } } } } } }"
        )
        data = _gh_json(["api", "graphql", "-f", f"query={query}"], working_dir)
        threads = (
            data.get("data", {}).get("repository", {}).get("pullRequest", {}).get("reviewThreads", {}).get("nodes", [])
            if isinstance(data, dict)
            else []
        )
        resolved: dict[int, bool] = {}
        for thread in threads:
            nodes = thread.get("comments", {}).get("nodes", [])
            if nodes:
                resolved[int(nodes[0]["databaseId"])] = bool(thread.get("isResolved"))
        return resolved


def _gh(args: list[str], working_dir: str) -> str:
    cmd = ["gh", *args]
    COMMAND_LOG.record(cmd, working_dir, source="gh")
    try:
        result = subprocess.run(cmd, cwd=working_dir, capture_output=True, text=True, check=False)
    except OSError as e:
        raise PullRequestError(f"failed to run gh: {e}") from e
    if result.returncode != 0:
        raise PullRequestError(f"gh {' '.join(args[:2])} failed: {result.stderr.strip() or result.returncode}")
    return result.stdout


def _gh_json(args: list[str], working_dir: str) -> Any:
    output = _gh(args, working_dir)
    try:
        return json.loads(output or "null")
    except json.JSONDecodeError as e:
        raise PullRequestError(f"gh returned invalid JSON: {e}") from e


_PR_FIELDS = "number,title,state,headRefName,baseRefName,url,headRefOid"


def _pull_request_from(data: dict[str, Any]) -> PullRequest:
    return PullRequest(
        number=int(data["number"]),
        title=str(data.get("title", "")),
        state=str(data.get("state", "")),
        head_ref=str(data.get("headRefName", "")),
        base_ref=str(data.get("baseRefName", "")),
        url=str(data.get("url", "")),
        head_sha=str(data.get("headRefOid", "")),
    )


def get_current_pr(working_dir: str) -> PullRequest:
    """Look up the pull request for the branch checked out in ``working_dir``.

    Raises:
        PullRequestError: if there is no PR or gh fails
    """
    data = _gh_json(["pr", "view", "--json", _PR_FIELDS], working_dir)
    if not isinstance(data, dict):
        raise PullRequestError("unexpected PR data from gh")
    return _pull_request_from(data)


def list_open_prs(working_dir: str) -> list[PullRequest]:
    data = _gh_json(["pr", "list", "--state", "open", "--json", _PR_FIELDS], working_dir)
    if data is None:
        return []
    if not isinstance(data, list):
        raise PullRequestError("unexpected PR list from gh")
    return [_pull_request_from(item) for item in data]


def create_pull_request(working_dir: str, title: str, body: str, head: str) -> int | None:
    """Open a PR for ``head`` and return its number, or None if gh printed no PR URL."""
    output = _gh(["pr", "create", "--title", title, "--body", body, "--head", head], working_dir)
    url = output.strip().splitlines()[-1] if output.strip() else ""
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    if tail.isdigit():
        return int(tail)
    logger.warning("Could not read PR number from gh output: {}", output.strip())
    return None


def merge_branch_name(numbers: Sequence[int], now: datetime) -> str:
    return "merge-prs-" + "-".join(str(n) for n in numbers) + now.strftime("-%Y%m%d-%H%M%S")


def merge_commit_message(pull_requests: Sequence[PullRequest]) -> str:
    lines = [f"Merge {len(pull_requests)} PRs", ""]
    lines.extend(f"- PR #{pr.number}: {pr.title}" for pr in pull_requests)
    return "\n".join(lines)


def merge_pr_body(pull_requests: Sequence[PullRequest]) -> str:
    lines = ["This PR merges the following PRs:", ""]
    lines.extend(f"- #{pr.number}: {pr.title}" for pr in pull_requests)
    return "\n".join(lines)


def parse_reviews(raw: Any, head_sha: str) -> list[PRComment]:
    comments: list[PRComment] = []
    for review in raw or []:
        body = review.get("body") or ""
        if not body.strip() or review.get("state") == "DISMISSED":
            continue
        comments.append(
            PRComment(
                id=int(review["id"]),
                kind=CommentKind.REVIEW,
                author=review.get("user", {}).get("login", ""),
                body=body,
                created_at=review.get("submitted_at") or "",
                is_outdated=review.get("commit_id") != head_sha,
                is_gemini_review=GEMINI_REVIEW_COMMAND in body,
            )
        )
    return comments


def parse_review_comments(raw: Any, head_sha: str, resolved: dict[int, bool]) -> list[PRComment]:
    comments: list[PRComment] = []
    for item in raw or []:
        body = item.get("body") or ""
        if not body.strip():
            continue
        comment_id = int(item["id"])
        comments.append(
            PRComment(
                id=comment_id,
                kind=CommentKind.REVIEW_COMMENT,
                author=item.get("user", {}).get("login", ""),
                body=body,
                path=item.get("path") or "",
                line=item.get("line") or 0,
                created_at=item.get("created_at") or "",
                is_outdated=item.get("position") is None or item.get("commit_id") != head_sha,
                is_resolved=resolved.get(comment_id, False),
                is_gemini_review=GEMINI_REVIEW_COMMAND in body,
            )
        )
    return comments


def parse_issue_comments(raw: Any) -> list[PRComment]:
    comments: list[PRComment] = []
    for item in raw or []:
        body = item.get("body") or ""
        if not body.strip():
            continue
        comments.append(
            PRComment(
                id=int(item["id"]),
                kind=CommentKind.ISSUE_COMMENT,
                author=item.get("user", {}).get("login", ""),
                body=body,
                created_at=item.get("created_at") or "",
                is_gemini_review=GEMINI_REVIEW_COMMAND in body,
            )
        )
    return comments


_HEADERS = {
    CommentKind.REVIEW: "=== PR REVIEW ===",
    CommentKind.REVIEW_COMMENT: "=== PR REVIEW COMMENT ===",
    CommentKind.ISSUE_COMMENT: "=== PR GENERAL COMMENT ===",
}
_TYPE_LABELS = {
    CommentKind.REVIEW: "PR Review",
    CommentKind.REVIEW_COMMENT: "Review Comment",
    CommentKind.ISSUE_COMMENT: "General Comment",
}
_INSTRUCTIONS = {
    CommentKind.REVIEW: "This is a general PR review. Please address the overall feedback provided. ",
    CommentKind.REVIEW_COMMENT: "This is a line-specific review comment. Please address the specific code feedback. ",
    CommentKind.ISSUE_COMMENT: "This is a general PR discussion comment. Please respond appropriately. ",
}


def format_comment_as_prompt(comment: PRComment, index: int, total: int) -> str:
    """Render one PR comment as a prompt for the AI pane."""
    lines = [f"Processing PR comment {index} of {total} from @{comment.author}", ""]
    lines.append(_HEADERS[comment.kind])
    lines.append("")
    lines.append(f"Author: @{comment.author}")
    lines.append(f"Type: {_TYPE_LABELS[comment.kind]}")
    if comment.path:
        location = f"File: {comment.path}"
        if comment.line > 0:
            location += f" (line {comment.line})"
        lines.append(location)
    lines.extend(["", "Comment:", "---", comment.body, "---", ""])
    prompt = "\n".join(lines) + "\n"
    prompt += _INSTRUCTIONS[comment.kind]
    prompt += "If the comment is asking a question, provide a clear answer. "
    prompt += "If it's suggesting a change, implement it. "
    prompt += "If you need clarification, explain what's unclear."
    return prompt
