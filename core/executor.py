# core/executor.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Optional, List
import shlex

from core.exec_limits import run_on_host_with_limits
from core.pilot_logging import logger, preview_text
import safety_rules

GIT = "git"
DEFAULT_TIMEOUT_SEC = 30
DEFAULT_GRACE_KILL_SEC = 3

# Порядок важен: "&&" и "||" проверяем раньше одиночного "|"
DANGEROUS_CHARS = [";", "&&", "||", "|", "`", "$", ">", "<"]

# Подкоманды, которые можно дописать к "git", если модель/пользователь забыли префикс
KNOWN_SUBCOMMANDS = {
    "add", "am", "apply", "archive", "bisect", "blame", "branch", "bundle",
    "cat-file", "check-attr", "check-ignore", "checkout", "cherry", "cherry-pick",
    "clean", "clone", "commit", "config", "count-objects", "describe", "diff",
    "difftool", "fetch", "for-each-ref", "format-patch", "fsck", "gc", "grep",
    "help", "init", "log", "ls-files", "ls-remote", "ls-tree", "maintenance",
    "merge", "merge-base", "mergetool", "mv", "name-rev", "notes", "prune",
    "pull", "push", "range-diff", "rebase", "reflog", "remote", "reset",
    "restore", "rev-list", "rev-parse", "revert", "rm", "shortlog", "show",
    "show-branch", "show-ref", "sparse-checkout", "stash", "status", "submodule",
    "switch", "symbolic-ref", "tag", "var", "verify-commit", "verify-tag",
    "version", "whatchanged", "worktree",
}


class InjectionError(ValueError):
    """Команда содержит shell-метасимволы. Единственная ошибка, которую executor бросает."""

    def __init__(self, char: str):
        self.char = char
        super().__init__(f"Potentially dangerous character detected: {char}")


@dataclass
class ExecutionResult:
    success: bool
    executed: bool
    output: str = ""
    error: str = ""
    return_code: Optional[int] = None
    warnings: List[str] = field(default_factory=list)
    # executed=False и для dry-run, и для упавшего процесса; attempted различает эти случаи
    attempted: bool = False
    timed_out: bool = False
    duration_sec: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


def _first_token(command: str) -> str:
    parts = command.split(None, 1)
    return parts[0] if parts else ""


def _is_acceptable(command: str) -> bool:
    head = _first_token((command or "").strip())
    return head == GIT or head.lower() in KNOWN_SUBCOMMANDS


def clean_command(command: str) -> str:
    """
    Нормализует команду:
    - обрезает пробелы,
    - дописывает "git " если его нет,
    - бросает InjectionError при любом shell-метасимволе.
    """
    cmd = (command or "").strip()
    check_injection(cmd)
    if _first_token(cmd) != GIT:
        cmd = f"{GIT} {cmd}"
    return cmd


def check_injection(command: str) -> None:
    for char in DANGEROUS_CHARS:
        if char in (command or ""):
            raise InjectionError(char)


class GitExecutor:
    """Выполняет git-команды в рабочем каталоге репозитория."""

    def __init__(
        self,
        repo_path: str,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        grace_kill_sec: int = DEFAULT_GRACE_KILL_SEC,
    ) -> None:
        self.repo_path = repo_path
        self.timeout_sec = timeout_sec
        self.grace_kill_sec = grace_kill_sec

    def is_destructive(self, command: str) -> bool:
        return safety_rules.is_destructive(command)

    def preview(self, command: str) -> ExecutionResult:
        return self.execute(command, dry_run=True)

    def execute(self, command: str, dry_run: bool = False) -> ExecutionResult:
        """
        Возвращает ExecutionResult; InjectionError пробрасывается наверх,
        до запуска процесса дело в этом случае не доходит.
        """
        if not command or not command.strip():
            return ExecutionResult(success=False, executed=False, error="Invalid Git command")

        # метасимволы - жёсткая граница, проверяем раньше всего остального
        check_injection(command)
        if not _is_acceptable(command):
            return ExecutionResult(success=False, executed=False, error="Invalid Git command")

        cmd = clean_command(command)
        warnings = safety_rules.warnings_for(cmd)

        if dry_run:
            result = ExecutionResult(
                success=True,
                executed=False,
                output=f"Would execute: {cmd}",
                warnings=warnings,
            )
            # процесс не запускался - duration пустой
            logger.write({"kind": "preview", "command": cmd, "duration": None, "warnings": warnings})
            return result

        result = self._run(cmd, warnings)
        logger.write({
            "kind": "execute",
            "command": cmd,
            "cwd": self.repo_path,
            "success": result.success,
            "executed": result.executed,
            "return_code": result.return_code,
            "timed_out": result.timed_out,
            "duration": result.duration_sec,
            "warnings": warnings,
            "stdout": preview_text(result.output),
            "stderr": preview_text(result.error),
        })
        return result

    def _run(self, cmd: str, warnings: List[str]) -> ExecutionResult:
        try:
            argv = shlex.split(cmd)
        except ValueError as e:
            # незакрытые кавычки и т.п.
            return ExecutionResult(
                success=False, executed=False, error=f"Cannot parse command: {e}", warnings=warnings,
            )

        try:
            res = run_on_host_with_limits(
                argv,
                timeout_sec=self.timeout_sec,
                grace_kill_sec=self.grace_kill_sec,
                cwd=self.repo_path,
                env=None,
            )
        except OSError as e:
            return ExecutionResult(
                success=False,
                executed=False,
                error=f"Command execution failed: {e}",
                warnings=warnings,
            )

        if res.killed:
            note = f"Command timed out after {self.timeout_sec}s"
            return ExecutionResult(
                success=False,
                executed=False,
                output=res.stdout,
                error=(res.stderr + ("\n" if res.stderr else "") + note),
                return_code=res.code,
                warnings=warnings,
                attempted=True,
                timed_out=True,
                duration_sec=res.duration_sec,
            )

        if res.code != 0:
            return ExecutionResult(
                success=False,
                executed=False,
                output=res.stdout,
                error=res.stderr or "Command execution failed",
                return_code=res.code,
                warnings=warnings,
                attempted=True,
                duration_sec=res.duration_sec,
            )

        return ExecutionResult(
            success=True,
            executed=True,
            output=res.stdout,
            error=res.stderr,
            return_code=0,
            warnings=warnings,
            attempted=True,
            duration_sec=res.duration_sec,
        )
