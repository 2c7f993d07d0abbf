"""Git worktree operations for a single instance.

Every method shells out to git synchronously. Callers run these from
async commands, never from the dispatcher itself.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from squadron.constants import BOOKMARK_GREP
from squadron.core.command_log import COMMAND_LOG
from squadron.core.errors import GitError

_FIELD_SEP = "\x1f"


@dataclass(frozen=True, order=True)
class GitFileStatus:
    """A changed file; ordering is by status letter, then path."""

    status: str  # A, M, D, R, C, ...
    path: str


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    short_sha: str
    author: str
    when: str
    subject: str


def run_git(args: list[str], cwd: Path | str) -> str:
    """Run git and return stripped stdout.

    Raises:
        GitError: if git exits non-zero or cannot be started
    """
    cmd = ["git", *args]
    COMMAND_LOG.record(cmd, cwd, source="git")
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise GitError(f"failed to run git: {e}", command=cmd) from e
    if result.returncode != 0:
        stderr = result.stderr.strip()
        raise GitError(f"git {' '.join(args)} failed: {stderr or result.returncode}", command=cmd, stderr=stderr)
    return result.stdout.strip()


def parse_name_status(output: str) -> list[GitFileStatus]:
    """Parse ``git diff --name-status`` output.

    Renames and copies report the destination path.
    """
    files: list[GitFileStatus] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0]:
            continue
        status = parts[0][0]
        path = parts[-1]
        files.append(GitFileStatus(status=status, path=path))
    return files


def parse_porcelain_untracked(output: str) -> list[GitFileStatus]:
    """Untracked entries from ``git status --porcelain`` reported as additions."""
    return [GitFileStatus(status="A", path=line[3:]) for line in output.splitlines() if line.startswith("?? ")]


def find_repo_root(path: Path | str) -> Path:
    return Path(run_git(["rev-parse", "--show-toplevel"], cwd=path))


def parse_remote_branches(output: str) -> list[str]:
    """Branch names from ``git branch -r``, without the origin/ prefix or HEAD."""
    branches: set[str] = set()
    for line in output.splitlines():
        name = line.strip()
        if not name.startswith("origin/") or name == "origin/HEAD":
            continue
        branches.add(name.removeprefix("origin/"))
    return sorted(branches)


def list_remote_branches(repo_path: Path | str) -> list[str]:
    run_git(["fetch", "origin", "--prune"], cwd=repo_path)
    return parse_remote_branches(run_git(["branch", "-r", "--format=%(refname:short)"], cwd=repo_path))


class GitWorktree:
    """An isolated, branch-scoped checkout for one instance."""

    def __init__(self, repo_path: Path, worktree_path: Path, branch_name: str, base_commit_sha: str = "") -> None:
        self.repo_path = Path(repo_path)
        self.worktree_path = Path(worktree_path)
        self.branch_name = branch_name
        self.base_commit_sha = base_commit_sha

    def _git(self, *args: str) -> str:
        return run_git(list(args), cwd=self.worktree_path)

    def _repo_git(self, *args: str) -> str:
        return run_git(list(args), cwd=self.repo_path)

    def _branch_exists(self, ref: str) -> bool:
        try:
            self._repo_git("rev-parse", "--verify", "--quiet", ref)
            return True
        except GitError:
            return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup(self) -> None:
        """Create the worktree on a fresh branch from HEAD, or reuse an existing local branch."""
        self._clear_stale_worktree()
        self.worktree_path.parent.mkdir(parents=True, exist_ok=True)

        if self._branch_exists(f"refs/heads/{self.branch_name}"):
            self._repo_git("worktree", "add", str(self.worktree_path), self.branch_name)
        else:
            head = self._repo_git("rev-parse", "HEAD")
            self._repo_git("worktree", "add", "-b", self.branch_name, str(self.worktree_path), head)
        if not self.base_commit_sha:
            self.base_commit_sha = self._git("rev-parse", "HEAD")
        logger.info(f"Worktree ready: {self.worktree_path} on {self.branch_name}")

    def setup_from_branch(self) -> None:
        """Check out an existing remote branch into the worktree."""
        self._clear_stale_worktree()
        self.worktree_path.parent.mkdir(parents=True, exist_ok=True)
        remote_ref = f"origin/{self.branch_name}"

        self._repo_git("fetch", "origin", self.branch_name)
        if self._branch_exists(f"refs/heads/{self.branch_name}"):
            self._repo_git("worktree", "add", str(self.worktree_path), self.branch_name)
            self.reset_to_remote("origin", self.branch_name)
        else:
            self._repo_git("worktree", "add", "-b", self.branch_name, str(self.worktree_path), remote_ref)
        self._git("branch", f"--set-upstream-to={remote_ref}", self.branch_name)
        if not self.base_commit_sha:
            self.base_commit_sha = self._git("rev-parse", "HEAD")
        logger.info(f"Worktree ready from {remote_ref}: {self.worktree_path}")

    def _clear_stale_worktree(self) -> None:
        try:
            self._repo_git("worktree", "remove", "-f", str(self.worktree_path))
        except GitError:
            pass  # nothing registered at that path
        self._repo_git("worktree", "prune")

    def remove(self) -> None:
        """Remove the worktree directory but keep the branch."""
        self._repo_git("worktree", "remove", "-f", str(self.worktree_path))
        self._repo_git("worktree", "prune")

    def cleanup(self) -> None:
        """Remove the worktree and delete its branch."""
        if self.worktree_path.exists():
            self.remove()
        if self._branch_exists(f"refs/heads/{self.branch_name}"):
            self._repo_git("branch", "-D", self.branch_name)

    def force_cleanup(self) -> list[str]:
        """Best-effort cleanup; returns the errors encountered instead of raising."""
        errors: list[str] = []
        for args in (
            ("worktree", "remove", "-f", str(self.worktree_path)),
            ("worktree", "prune"),
            ("branch", "-D", self.branch_name),
        ):
            try:
                self._repo_git(*args)
            except GitError as e:
                errors.append(str(e))
        return errors

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_dirty(self) -> bool:
        return bool(self._git("status", "--porcelain"))

    def get_current_branch(self) -> str:
        return self._git("branch", "--show-current")

    def get_current_commit_sha(self) -> str:
        return self._git("rev-parse", "HEAD")

    def get_main_branch(self) -> str:
        """Return the default branch name (main, master, etc.).

        Raises:
            GitError: if no default branch can be determined
        """
        for ref in ("refs/remotes/origin/main", "refs/remotes/origin/master"):
            try:
                self._git("rev-parse", "--verify", "--quiet", ref)
                return ref.rsplit("/", 1)[1]
            except GitError:
                continue
        out = self._git("remote", "show", "origin")
        for line in out.splitlines():
            if "HEAD branch" in line:
                branch = line.split(":")[-1].strip()
                if branch and branch != "(unknown)":
                    return branch
        raise GitError("could not determine main branch of origin")

    def get_diff(self, base: str | None = None) -> str:
        """Diff of the working tree against ``base`` (defaults to the branch point)."""
        target = base or self.base_commit_sha or "HEAD"
        return self._git("--no-pager", "diff", target)

    def get_commit_diff(self, sha: str) -> str:
        return self._git("--no-pager", "show", "--format=%h %s%n", sha)

    def get_commit_history(self, n: int) -> list[CommitInfo]:
        """Most recent ``n`` commits on the branch, newest first."""
        fmt = _FIELD_SEP.join(["%H", "%h", "%an", "%ar", "%s"])
        out = self._git("log", f"-n{n}", f"--format={fmt}")
        commits: list[CommitInfo] = []
        for line in out.splitlines():
            parts = line.split(_FIELD_SEP)
            if len(parts) != 5:
                continue
            commits.append(CommitInfo(*parts))
        return commits

    def get_commit_message(self, sha: str) -> str:
        return self._git("log", "--format=%s", "-n", "1", sha)

    def get_changed_files_between(self, from_commit: str, to_commit: str) -> list[GitFileStatus]:
        """Files changed in ``from_commit..to_commit``.

        An empty ``from_commit`` means the changes introduced by ``to_commit`` itself.
        """
        if from_commit:
            out = self._git("diff", "--name-status", from_commit, to_commit)
        else:
            out = self._git("diff", "--name-status", f"{to_commit}^", to_commit)
        return sorted(parse_name_status(out))

    def get_changed_files_since(self, commit: str) -> list[GitFileStatus]:
        """Committed, staged, unstaged and untracked changes relative to ``commit``."""
        files = {f.path: f for f in parse_name_status(self._git("diff", "--name-status", commit))}
        for untracked in parse_porcelain_untracked(self._git("status", "--porcelain")):
            files.setdefault(untracked.path, untracked)
        return sorted(files.values())

    def get_all_bookmark_commits(self) -> list[str]:
        """Bookmark commit SHAs on the current branch, oldest first."""
        out = self._git("log", "--reverse", f"--grep={BOOKMARK_GREP}", "--format=%H")
        return [line for line in out.splitlines() if line]

    def list_remote_branches(self) -> list[str]:
        return list_remote_branches(self.repo_path)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def commit_changes(self, message: str) -> bool:
        """Commit everything in the worktree. Returns False when there was nothing to commit."""
        if not self.is_dirty():
            return False
        self._git("add", ".")
        self._git("commit", "-m", message, "--no-verify")
        return True

    def push_changes(self, message: str, with_force: bool) -> None:
        self.commit_changes(message)
        args = ["push", "-u", "origin", self.branch_name]
        if with_force:
            args.append("--force-with-lease")
        self._git(*args)
        logger.info(f"Pushed {self.branch_name}")

    def rebase_with_main(self, main_branch: str | None = None) -> None:
        """Rebase the branch onto origin/<main>; aborts and raises on conflicts."""
        self._git("fetch", "origin")
        target = f"origin/{main_branch or self.get_main_branch()}"
        try:
            self._git("rebase", target)
        except GitError as e:
            try:
                self._git("rebase", "--abort")
            except GitError:
                logger.warning(f"rebase --abort failed in {self.worktree_path}")
            raise GitError(f"rebase onto {target} failed and was aborted: {e.stderr or e}") from e

    def reset_to_remote(self, remote: str, branch: str) -> None:
        self._git("checkout", branch)
        self._git("reset", "--hard", f"{remote}/{branch}")

    def create_bookmark_commit(self, message: str) -> str:
        """Create an empty marker commit and return its SHA."""
        self._git("commit", "--allow-empty", "--no-verify", "-m", message)
        return self.get_current_commit_sha()

    # ------------------------------------------------------------------
    # Combining pull requests
    # ------------------------------------------------------------------

    def fetch_branch(self, branch: str) -> None:
        self._git("fetch", "origin", branch)

    def cherry_pick_branch(self, branch: str) -> int:
        """Cherry-pick the commits origin/<branch> adds over its merge-base with HEAD.

        On failure the worktree is reset to where it was, so a conflicting
        branch leaves none of its commits behind. Returns the number of
        commits applied.
        """
        remote = f"origin/{branch}"
        start = self.get_current_commit_sha()
        base = self._git("merge-base", "HEAD", remote)
        shas = [sha for sha in self._git("rev-list", "--reverse", f"{base}..{remote}").splitlines() if sha]
        for sha in shas:
            try:
                self._git("cherry-pick", sha)
            except GitError as e:
                conflicted = self._has_conflicts()
                try:
                    self._git("cherry-pick", "--abort")
                except GitError:
                    logger.warning(f"cherry-pick --abort failed in {self.worktree_path}")
                self._git("reset", "--hard", start)
                if conflicted:
                    raise GitError(f"merge conflict cherry-picking {sha[:7]} from {branch}") from e
                raise GitError(f"cherry-pick of {sha[:7]} from {branch} failed: {e.stderr or e}") from e
        return len(shas)

    def _has_conflicts(self) -> bool:
        try:
            status = self._git("status", "--porcelain")
        except GitError:
            return False
        return any(line[:2] in ("UU", "AA", "DD", "AU", "UA", "DU", "UD") for line in status.splitlines())

    def commit_merged_changes(self, message: str) -> bool:
        """Stage everything and commit. Returns False when the tree was already clean."""
        self._git("add", "-A")
        if not self._git("status", "--porcelain"):
            return False
        self._git("commit", "-m", message, "--no-verify")
        return True

    def push_branch(self) -> None:
        self._git("push", "-u", "origin", self.branch_name)
        logger.info(f"Pushed {self.branch_name}")
