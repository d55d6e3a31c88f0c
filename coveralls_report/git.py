"""Git metadata for the payload's ``git`` field.

Usage:
    info = collect_git_info(".")     # dict in the Coveralls shape, or None

Shape::

    {
      "head": {"id", "author_name", "author_email",
               "committer_name", "committer_email", "message"},
      "branch": "main",
      "remotes": [{"name": "origin", "url": "..."}]
    }
"""

import subprocess
import warnings
from collections.abc import Callable
from pathlib import Path

# Fields separated by a unit separator so commit messages can contain anything
_SEP = "\x1f"
_HEAD_FORMAT = _SEP.join(["%H", "%an", "%ae", "%cn", "%ce", "%B"])
_HEAD_KEYS = ("id", "author_name", "author_email", "committer_name", "committer_email", "message")

Runner = Callable[[list[str], Path], str]


class GitInfoWarning(UserWarning):
    """Git metadata could not be collected; the upload goes out without it."""


def run_git(args: list[str], cwd: Path) -> str:
    """Run ``git *args`` in *cwd* and return its stdout."""
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        encoding="utf-8",
        errors="replace",
        check=True,
    )
    return completed.stdout


def collect_git_info(repo_dir: str | Path = ".", runner: Runner = run_git) -> dict | None:
    """Collect head commit, branch and remotes of the repository at *repo_dir*.

    Returns None (with a :class:`GitInfoWarning`) when git is unavailable or
    *repo_dir* is not a repository.
    """
    cwd = Path(repo_dir)
    try:
        head_raw = runner(["log", "-1", f"--format={_HEAD_FORMAT}"], cwd)
        branch = runner(["rev-parse", "--abbrev-ref", "HEAD"], cwd).strip()
        remotes_raw = runner(["remote", "-v"], cwd)
    except (OSError, subprocess.CalledProcessError) as exc:
        warnings.warn(f"Could not collect git information: {exc}", GitInfoWarning, stacklevel=2)
        return None

    values = head_raw.rstrip("\n").split(_SEP, len(_HEAD_KEYS) - 1)
    values += [""] * (len(_HEAD_KEYS) - len(values))
    head = dict(zip(_HEAD_KEYS, values))
    head["message"] = head["message"].strip()

    return {
        "head": head,
        "branch": branch,
        "remotes": parse_remotes(remotes_raw),
    }


def parse_remotes(output: str) -> list[dict[str, str]]:
    """Turn ``git remote -v`` output into ``[{"name", "url"}]``, one per remote."""
    remotes: list[dict[str, str]] = []
    seen: set[str] = set()
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[0] in seen:
            continue
        seen.add(parts[0])
        remotes.append({"name": parts[0], "url": parts[1]})
    return remotes
