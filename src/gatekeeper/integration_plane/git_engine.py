"""Deterministic Git helpers for reviewing, merging and promoting contributor branches."""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

MergeSide = Literal["ours", "theirs"]

_BRANCH_NAME_RE = re.compile(r"^[A-Za-z0-9._/@+-]+$")
_FORBIDDEN_BRANCH_SUFFIXES = (".lock", "/", ".")


class GitEngineError(RuntimeError):
    """Base error for git engine failures."""


class SanitizationError(GitEngineError):
    """Raised when a branch name is unsafe to hand to git."""


class GitCommandError(GitEngineError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class DirtyCheckoutError(GitEngineError):
    """Raised when a branch must move but its checkout holds uncommitted changes."""

    def __init__(self, *, branch: str, worktree: Path) -> None:
        self.branch = branch
        self.worktree = worktree
        super().__init__(
            f"refusing to move {branch}: checkout at {worktree} has uncommitted changes"
        )


class GitTimeoutError(GitEngineError):
    """Raised when a git subprocess exceeds the configured command timeout."""

    def __init__(self, *, command: Sequence[str], timeout_seconds: float) -> None:
        self.command = tuple(command)
        self.timeout_seconds = timeout_seconds
        super().__init__(f"git command timed out after {timeout_seconds}s: {' '.join(command)}")


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class RepoInitResult:
    repo_path: Path
    created: bool
    main_branch: str
    integration_branch: str


@dataclass(frozen=True, slots=True)
class BranchResult:
    name: str
    base: str
    head: str


@dataclass(frozen=True, slots=True)
class MergeProbe:
    """Outcome of a non-destructive three-way merge probe."""

    clean: bool
    conflicts: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class MergeAttempt:
    """Outcome of a real ``--no-ff`` merge into a checked-out worktree."""

    clean: bool
    conflicts: tuple[str, ...]
    pre_merge_head: str


@dataclass(frozen=True, slots=True)
class PromotionResult:
    """Main branch heads around an integration-to-main merge."""

    previous_main: str
    new_main: str


def validate_branch_name(value: str, *, field: str = "branch") -> str:
    """Reject branch names git would refuse or that could be read as options."""

    if not isinstance(value, str) or value == "":
        raise SanitizationError(f"{field} cannot be empty.")
    if any(ch.isspace() or ord(ch) < 32 or ord(ch) == 127 for ch in value):
        raise SanitizationError(f"{field} contains whitespace or control characters.")
    if ".." in value or "//" in value or "@{" in value:
        raise SanitizationError(f"{field} cannot contain '..', '//' or '@{{'.")
    if value.startswith(("-", "/")):
        raise SanitizationError(f"{field} cannot start with '-' or '/'.")
    if value.endswith(_FORBIDDEN_BRANCH_SUFFIXES):
        raise SanitizationError(f"{field} cannot end with '.lock', '/' or '.'.")
    if not _BRANCH_NAME_RE.fullmatch(value):
        raise SanitizationError(f"{field} contains unsupported characters.")
    return value


class GitEngine:
    """Deterministic wrapper around the git CLI.

    Every command runs without a shell, with terminal prompts disabled and a
    per-command timeout, so a hung fetch or merge surfaces as
    ``GitTimeoutError`` instead of blocking the orchestrator forever.
    """

    def __init__(
        self,
        repo_path: Path | str,
        *,
        main_branch: str = "main",
        integration_branch: str = "integration",
        remote: str = "origin",
        command_timeout_seconds: float = 120.0,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self.main_branch = validate_branch_name(main_branch, field="main_branch")
        self.integration_branch = validate_branch_name(
            integration_branch, field="integration_branch"
        )
        self.remote = remote
        self.command_timeout_seconds = command_timeout_seconds
        self._env_overrides = dict(env_overrides or {})

    # Repository and branch bookkeeping.

    def init_or_open(self) -> RepoInitResult:
        """Open a repository or initialize it, always ensuring main+integration branches."""
        self.repo_path.mkdir(parents=True, exist_ok=True)
        created = not (self.repo_path / ".git").exists()

        if created:
            self._run_git(["init", "--initial-branch", self.main_branch], cwd=self.repo_path)
        else:
            self._run_git(["rev-parse", "--git-dir"], cwd=self.repo_path)

        self._ensure_local_identity()

        if self._run_git(["rev-parse", "--verify", "HEAD"], check=False).returncode != 0:
            self._run_git(["symbolic-ref", "HEAD", f"refs/heads/{self.main_branch}"])
            self._run_git(
                ["commit", "--allow-empty", "--no-gpg-sign", "-m", "Initialize repository"]
            )

        if not self.branch_exists(self.main_branch):
            self._run_git(["branch", self.main_branch, "HEAD"])

        if not self.branch_exists(self.integration_branch):
            self._run_git(["branch", self.integration_branch, self.main_branch])

        return RepoInitResult(
            repo_path=self.repo_path,
            created=created,
            main_branch=self.main_branch,
            integration_branch=self.integration_branch,
        )

    def has_remote(self) -> bool:
        remotes = self._run_git(["remote"], check=False).stdout.split()
        return self.remote in remotes

    def fetch(self) -> bool:
        """Fetch and prune the configured remote. Returns ``False`` when none is configured."""
        if not self.has_remote():
            return False
        self._run_git(["fetch", "--prune", self.remote])
        return True

    def list_branches(self, prefixes: Sequence[str] | None = None) -> tuple[str, ...]:
        """List local and remote-tracking branch names, minus main/integration.

        Remote-tracking names are reported without the ``<remote>/`` prefix.
        When ``prefixes`` is given only branches starting with one of them are kept.
        """
        output = self._run_git(
            [
                "for-each-ref",
                "--format=%(refname)",
                "refs/heads",
                f"refs/remotes/{self.remote}",
            ]
        ).stdout

        remote_prefix = f"refs/remotes/{self.remote}/"
        names: set[str] = set()
        for line in output.splitlines():
            ref = line.strip()
            if ref.startswith("refs/heads/"):
                name = ref[len("refs/heads/") :]
            elif ref.startswith(remote_prefix):
                name = ref[len(remote_prefix) :]
            else:
                continue
            if name in {"HEAD", self.main_branch, self.integration_branch}:
                continue
            if prefixes is not None and not any(name.startswith(prefix) for prefix in prefixes):
                continue
            names.add(name)
        return tuple(sorted(names))

    def branch_exists(self, branch: str) -> bool:
        return self._ref_exists(f"refs/heads/{branch}")

    def remote_branch_exists(self, branch: str) -> bool:
        return self._ref_exists(f"refs/remotes/{self.remote}/{branch}")

    def resolve_ref(self, branch: str) -> str:
        """Return the fully qualified ref for ``branch``, preferring the remote-tracking one."""
        validate_branch_name(branch)
        remote_ref = f"refs/remotes/{self.remote}/{branch}"
        if self._ref_exists(remote_ref):
            return remote_ref
        local_ref = f"refs/heads/{branch}"
        if self._ref_exists(local_ref):
            return local_ref
        raise GitEngineError(f"Branch does not exist: {branch}")

    def head_commit(self, branch: str) -> str:
        return self.rev_parse(self.resolve_ref(branch))

    def rev_parse(self, ref: str) -> str:
        return self._run_git(["rev-parse", "--verify", f"{ref}^{{commit}}"]).stdout.strip()

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._run_git(
            ["merge-base", "--is-ancestor", ancestor, descendant],
            check=False,
        )
        if result.returncode not in {0, 1}:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.returncode == 0

    def current_branch(self) -> str | None:
        branch = self._run_git(["branch", "--show-current"]).stdout.strip()
        return branch or None

    def create_branch(self, name: str, base: str) -> BranchResult:
        validate_branch_name(name)
        if self.branch_exists(name):
            raise GitEngineError(f"Branch already exists: {name}")
        self._run_git(["branch", name, base])
        return BranchResult(name=name, base=base, head=self.rev_parse(f"refs/heads/{name}"))

    def last_commit_time(self, ref: str) -> datetime:
        raw = self._run_git(["log", "-1", "--format=%ct", ref]).stdout.strip()
        return datetime.fromtimestamp(int(raw), tz=UTC)

    # Review-time inspection.

    def changed_files(self, base_ref: str, head_ref: str) -> tuple[str, ...]:
        """Files changed on ``head_ref`` since its merge-base with ``base_ref``."""
        output = self._run_git(["diff", "--name-only", f"{base_ref}...{head_ref}"]).stdout
        return tuple(sorted({line.strip() for line in output.splitlines() if line.strip()}))

    def probe_merge(self, target_ref: str, source_ref: str) -> MergeProbe:
        """Detect conflicts between two refs without moving any ref or touching a worktree."""
        result = self._run_git(
            ["merge-tree", "--write-tree", "--name-only", "--no-messages", target_ref, source_ref],
            check=False,
        )
        if result.returncode == 0:
            return MergeProbe(clean=True, conflicts=())
        if result.returncode == 1:
            lines = result.stdout.splitlines()[1:]
            conflicts: list[str] = []
            for line in lines:
                if not line.strip():
                    break
                conflicts.append(line.strip())
            return MergeProbe(clean=False, conflicts=tuple(sorted(set(conflicts))))
        # Older git has no --write-tree mode; fall back to a throw-away worktree merge.
        return self._probe_merge_in_worktree(target_ref, source_ref)

    def staged_files(self, worktree: Path | None = None) -> tuple[str, ...]:
        output = self._run_git(["diff", "--cached", "--name-only"], cwd=worktree).stdout
        return tuple(sorted({line.strip() for line in output.splitlines() if line.strip()}))

    # Integration-time operations on private worktrees.

    @contextmanager
    def branch_worktree(self, branch: str) -> Iterator[Path]:
        """Yield a private detached worktree at ``branch``'s tip.

        When the block exits normally and the worktree HEAD moved, ``branch`` is
        moved to it with ``move_branch``. An exception leaves the ref untouched.
        A checkout of ``branch`` owned by someone else is never written to directly.
        """
        if not self.branch_exists(branch):
            raise GitEngineError(f"Branch does not exist: {branch}")
        start = self.rev_parse(f"refs/heads/{branch}")
        with self.detached_worktree(start) as worktree:
            yield worktree
            end = self.head(worktree)
            if end != start:
                self.move_branch(branch, end, expected=start)

    @contextmanager
    def detached_worktree(self, ref: str) -> Iterator[Path]:
        """Yield a throw-away detached worktree at ``ref``."""
        temp_path = Path(tempfile.mkdtemp(prefix="gatekeeper-detached-"))
        added = False
        try:
            self._run_git(["worktree", "add", "--detach", "--force", str(temp_path), ref])
            added = True
            yield temp_path
        finally:
            if added:
                self._run_git(["worktree", "remove", "--force", str(temp_path)], check=False)
                self._run_git(["worktree", "prune"], check=False)
            shutil.rmtree(temp_path, ignore_errors=True)

    def checkout_of(self, branch: str) -> Path | None:
        """Return the worktree that has ``branch`` checked out, if any."""
        return self._existing_worktree_for_branch(branch)

    def assert_publishable(self, branch: str) -> None:
        """Refuse to move ``branch`` while a checkout of it has uncommitted changes.

        Untracked files are left alone by ``move_branch`` and do not count.
        """
        checkout = self.checkout_of(branch)
        if checkout is None:
            return
        status = self._run_git(
            ["status", "--porcelain", "--untracked-files=no"], cwd=checkout
        ).stdout
        if status.strip():
            raise DirtyCheckoutError(branch=branch, worktree=checkout)

    def move_branch(self, branch: str, commit_sha: str, *, expected: str) -> None:
        """Compare-and-swap ``branch`` from ``expected`` to ``commit_sha``.

        A clean checkout of ``branch`` is carried along with a two-tree
        ``read-tree -m -u``, which refuses to overwrite local files.
        """
        validate_branch_name(branch)
        self.assert_publishable(branch)
        checkout = self.checkout_of(branch)
        self._run_git(
            [
                "update-ref",
                "-m",
                f"gatekeeper: move {branch}",
                f"refs/heads/{branch}",
                commit_sha,
                expected,
            ]
        )
        if checkout is not None:
            self._run_git(["read-tree", "-m", "-u", expected, commit_sha], cwd=checkout)

    def head(self, worktree: Path) -> str:
        return self._run_git(["rev-parse", "HEAD"], cwd=worktree).stdout.strip()

    def merge_no_ff(self, worktree: Path, source_ref: str, message: str) -> MergeAttempt:
        """Merge ``source_ref`` with a merge commit; conflicts are returned, not raised."""
        pre_merge_head = self.head(worktree)
        result = self._run_git(
            ["merge", "--no-ff", "--no-edit", "-m", message, source_ref],
            cwd=worktree,
            check=False,
        )
        if result.returncode == 0:
            return MergeAttempt(clean=True, conflicts=(), pre_merge_head=pre_merge_head)

        conflicts = self.conflicted_files(worktree)
        if not conflicts:
            self.abort_merge(worktree)
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return MergeAttempt(clean=False, conflicts=conflicts, pre_merge_head=pre_merge_head)

    def conflicted_files(self, worktree: Path) -> tuple[str, ...]:
        output = self._run_git(["diff", "--name-only", "--diff-filter=U"], cwd=worktree).stdout
        return tuple(sorted({line.strip() for line in output.splitlines() if line.strip()}))

    def checkout_side(self, worktree: Path, path: str, side: MergeSide) -> None:
        self._run_git(["checkout", f"--{side}", "--", path], cwd=worktree)

    def stage(self, worktree: Path, paths: Sequence[str]) -> None:
        if paths:
            self._run_git(["add", "--", *paths], cwd=worktree)

    def commit_merge(self, worktree: Path, message: str) -> str:
        self._run_git(["commit", "--no-gpg-sign", "--no-edit", "-m", message], cwd=worktree)
        return self.head(worktree)

    def abort_merge(self, worktree: Path) -> None:
        self._run_git(["merge", "--abort"], cwd=worktree, check=False)

    def reset_hard(self, worktree: Path, commit_sha: str) -> None:
        """Drop merge state in a private worktree and move its HEAD to ``commit_sha``."""
        self.abort_merge(worktree)
        self._run_git(["reset", "--hard", commit_sha], cwd=worktree)

    def reset_branch(self, branch: str, commit_sha: str) -> None:
        """Point ``branch`` back at ``commit_sha`` through ``move_branch``."""
        current = self.rev_parse(f"refs/heads/{branch}")
        if current != commit_sha:
            self.move_branch(branch, commit_sha, expected=current)

    # Promotion and cleanup.

    def advance_main(self, message: str) -> PromotionResult:
        """Merge the integration branch into main with ``--no-ff``."""
        self.assert_publishable(self.main_branch)
        with self.branch_worktree(self.main_branch) as worktree:
            previous_main = self.head(worktree)
            try:
                self._run_git(
                    ["merge", "--no-ff", "--no-edit", "-m", message, self.integration_branch],
                    cwd=worktree,
                )
            except GitCommandError:
                self.abort_merge(worktree)
                raise
            new_main = self.head(worktree)
        return PromotionResult(previous_main=previous_main, new_main=new_main)

    def push(self, branch: str) -> None:
        validate_branch_name(branch)
        self._run_git(["push", self.remote, f"refs/heads/{branch}:refs/heads/{branch}"])

    def delete_remote_branch(self, branch: str) -> None:
        validate_branch_name(branch)
        self._run_git(["push", self.remote, "--delete", branch])

    def delete_branch(self, branch: str) -> bool:
        """Delete a local branch. Returns ``False`` when it does not exist."""
        validate_branch_name(branch)
        if not self.branch_exists(branch):
            return False
        self._run_git(["branch", "-D", branch])
        return True

    # Internals.

    def _probe_merge_in_worktree(self, target_ref: str, source_ref: str) -> MergeProbe:
        conflicts: tuple[str, ...] = ()
        clean = True
        with self.detached_worktree(target_ref) as worktree:
            merge_result = self._run_git(
                ["merge", "--no-commit", "--no-ff", source_ref],
                cwd=worktree,
                check=False,
            )
            if merge_result.returncode != 0:
                clean = False
                conflicts = self.conflicted_files(worktree)
            self._run_git(["merge", "--abort"], cwd=worktree, check=False)
            self._run_git(["reset", "--hard", "HEAD"], cwd=worktree, check=False)
        return MergeProbe(clean=clean, conflicts=conflicts)

    def _ensure_local_identity(self) -> None:
        if self._run_git(["config", "--local", "--get", "user.name"], check=False).returncode != 0:
            self._run_git(["config", "--local", "user.name", "gatekeeper"])
        if self._run_git(["config", "--local", "--get", "user.email"], check=False).returncode != 0:
            self._run_git(["config", "--local", "user.email", "gatekeeper@example.invalid"])

    def _ref_exists(self, ref: str) -> bool:
        return self._run_git(["show-ref", "--verify", "--quiet", ref], check=False).returncode == 0

    def _existing_worktree_for_branch(self, branch: str) -> Path | None:
        output = self._run_git(["worktree", "list", "--porcelain"], check=False).stdout
        branch_ref = f"refs/heads/{branch}"

        current_worktree: Path | None = None
        for line in output.splitlines():
            key, _, value = line.partition(" ")
            if key == "worktree":
                current_worktree = Path(value.strip()).resolve(strict=False)
            elif key == "branch" and value.strip() == branch_ref and current_worktree is not None:
                return current_worktree
            elif not line:
                current_worktree = None
        return None

    def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        run_cwd = (cwd if cwd is not None else self.repo_path).resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=run_cwd,
                env=env,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.command_timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitTimeoutError(
                command=command, timeout_seconds=self.command_timeout_seconds
            ) from exc

        result = CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        return result


__all__ = [
    "BranchResult",
    "CommandResult",
    "DirtyCheckoutError",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
    "GitTimeoutError",
    "MergeAttempt",
    "MergeProbe",
    "MergeSide",
    "PromotionResult",
    "RepoInitResult",
    "SanitizationError",
    "validate_branch_name",
]
