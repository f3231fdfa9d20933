# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Thin wrapper over the git CLI for the experiment working tree.

Every command runs via ``subprocess.run`` with captured output. A non-zero
exit raises :class:`~expflow.lib.errors.GitError` carrying stderr; callers
that only query state (``branch_exists``) translate that into booleans.

The runner is injectable so tests can substitute a fake without touching a
real repository.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from pathlib import Path

from expflow.lib.errors import GitError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[str]]

EXPERIMENT_BRANCH_PREFIX = "exp/"
_DEFAULT_TIMEOUT_SECONDS = 120


class GitRepository:
    """Git operations scoped to one working tree."""

    def __init__(
        self,
        root: Path,
        runner: Runner = subprocess.run,
        remote: str = "origin",
        timeout_seconds: int = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._root = root
        self._runner = runner
        self._remote = remote
        self._timeout = timeout_seconds

    @property
    def root(self) -> Path:
        return self._root

    @property
    def remote(self) -> str:
        return self._remote

    def run(self, *args: str) -> str:
        """Run ``git <args>`` and return stripped stdout.

        Raises:
            GitError: On non-zero exit, timeout, or missing git executable.
        """
        command = ["git", *args]
        logger.debug("Running %s in %s", " ".join(command), self._root)
        try:
            result = self._runner(  # noqa: S603
                command,
                cwd=str(self._root),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(command, -1, f"timed out after {exc.timeout}s") from exc
        except FileNotFoundError as exc:
            raise GitError(command, -1, "git executable not found") from exc
        if result.returncode != 0:
            raise GitError(command, result.returncode, result.stderr or "")
        return (result.stdout or "").strip()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def branch_exists(self, branch: str) -> bool:
        try:
            self.run("rev-parse", "--verify", "--quiet", branch)
        except GitError:
            return False
        return True

    def current_branch(self) -> str:
        return self.run("rev-parse", "--abbrev-ref", "HEAD")

    def has_uncommitted_changes(self) -> bool:
        return bool(self.run("status", "--porcelain"))

    def rev_parse(self, ref: str) -> str:
        return self.run("rev-parse", ref)

    def last_commit_summary(self, ref: str) -> str:
        return self.run("log", "-1", "--pretty=format:%h - %s", ref)

    def list_experiment_branches(self) -> list[str]:
        """Return local and remote ``exp/*`` branch names, deduplicated."""
        output = self.run("branch", "-a", "--format=%(refname:short)")
        remote_prefix = f"{self._remote}/"
        branches: list[str] = []
        for line in output.splitlines():
            name = line.strip()
            if name.startswith(remote_prefix):
                name = name[len(remote_prefix) :]
            if name.startswith(EXPERIMENT_BRANCH_PREFIX) and name not in branches:
                branches.append(name)
        return branches

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def fetch(self) -> None:
        self.run("fetch", self._remote)

    def checkout(self, branch: str) -> None:
        self.run("checkout", branch)

    def pull(self, branch: str) -> None:
        self.run("pull", self._remote, branch)

    def create_branch(self, branch: str) -> None:
        self.run("checkout", "-b", branch)

    def add_all(self) -> None:
        self.run("add", "--all")

    def commit(self, message: str) -> None:
        self.run("commit", "-m", message)

    def push(self, branch: str, set_upstream: bool = True) -> None:
        if set_upstream:
            self.run("push", "-u", self._remote, branch)
        else:
            self.run("push", self._remote, branch)
