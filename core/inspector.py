# core/inspector.py
from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from core.pilot_logging import logger

NOT_A_REPO = "Not a Git repository"

# разделитель полей в git log: в subject может встретиться что угодно, кроме \x1f
_SEP = "\x1f"
_LAST_COMMIT_FORMAT = _SEP.join(["%h", "%s", "%an", "%cI"])

_AHEAD_RE = re.compile(r"local out of date by (\d+) commit")
_BEHIND_RE = re.compile(r"branches out of date by (\d+) commit")


def _no_remote() -> dict:
    return {"has_remote": False, "ahead": 0, "behind": 0, "up_to_date": False}


@dataclass(frozen=True)
class RepositorySnapshot:
    branch: str = "unknown"
    is_dirty: bool = False
    staged_files: int = 0
    unstaged_files: int = 0
    untracked_files: int = 0
    is_detached: bool = False
    remote_status: dict = field(default_factory=_no_remote)
    last_commit: dict = field(default_factory=dict)
    stash_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        # при ошибке остальные поля не имеют смысла - не отдаём их вовсе
        if self.error is not None:
            return {"error": self.error}
        data = asdict(self)
        data.pop("error")
        return data


def _run(cmd: list[str], cwd: str) -> tuple[int, str, str]:
    try:
        p = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
        return p.returncode, (p.stdout or ""), (p.stderr or "")
    except OSError as e:
        return 1, "", f"{type(e).__name__}: {e}"


def count_lines(text: str | None) -> int:
    """Количество непустых строк. Пустой вывод - это 0, а не 1."""
    return sum(1 for line in (text or "").splitlines() if line.strip())


class RepositoryInspector:
    """Только чтение: снимок состояния репозитория через git CLI."""

    def __init__(self, repo_path: str) -> None:
        self.repo_path = repo_path

    def _git(self, *args: str) -> tuple[int, str, str]:
        return _run(["git", *args], self.repo_path)

    def probe(self) -> bool:
        code, _, _ = self._git("status")
        return code == 0

    def snapshot(self) -> RepositorySnapshot:
        if not self.probe():
            return RepositorySnapshot(error=NOT_A_REPO)

        try:
            return RepositorySnapshot(
                branch=self.current_branch(),
                is_dirty=self.is_dirty(),
                staged_files=self._count("diff", "--cached", "--name-only"),
                unstaged_files=self._count("diff", "--name-only"),
                untracked_files=self._count("ls-files", "--others", "--exclude-standard"),
                is_detached=self.is_detached(),
                remote_status=self.remote_status(),
                last_commit=self.last_commit(),
                stash_count=self._count("stash", "list"),
            )
        except Exception as e:
            logger.write({"kind": "snapshot_error", "cwd": self.repo_path, "error": str(e)})
            return RepositorySnapshot(error=f"Failed to analyze context: {e}")

    # --- отдельные поля: каждое со своим fallback ---

    def current_branch(self) -> str:
        code, out, _ = self._git("rev-parse", "--abbrev-ref", "HEAD")
        branch = out.strip()
        return branch if code == 0 and branch else "unknown"

    def is_dirty(self) -> bool:
        code, out, _ = self._git("status", "--porcelain")
        return code == 0 and bool(out.strip())

    def _count(self, *args: str) -> int:
        code, out, _ = self._git(*args)
        return count_lines(out) if code == 0 else 0

    def is_detached(self) -> bool:
        # TODO: непустой symbolic-ref на самом деле означает attached HEAD; уточнить у владельцев UI, кто читает флаг
        code, out, _ = self._git("symbolic-ref", "-q", "HEAD")
        return code == 0 and bool(out.strip())

    def remote_status(self) -> dict:
        code, out, _ = self._git("remote", "show", "origin")
        if code != 0:
            return _no_remote()
        ahead = _AHEAD_RE.search(out)
        behind = _BEHIND_RE.search(out)
        return {
            "has_remote": True,
            "ahead": int(ahead.group(1)) if ahead else 0,
            "behind": int(behind.group(1)) if behind else 0,
            "up_to_date": not ahead and not behind,
        }

    def last_commit(self) -> dict:
        code, out, _ = self._git("log", "-1", f"--pretty=format:{_LAST_COMMIT_FORMAT}")
        if code != 0:
            return {}
        parts = out.strip().split(_SEP)
        if len(parts) != 4:
            return {}
        sha, message, author, date = (p.strip() for p in parts)
        try:
            iso = datetime.fromisoformat(date).astimezone(timezone.utc).isoformat()
        except ValueError:
            return {}
        return {"sha": sha, "message": message, "author": author, "date": iso}
