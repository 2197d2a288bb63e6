# core/exec_limits.py
from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import IO, Dict, List, Optional, Sequence

import psutil


@dataclass
class RunResult:
    code: int
    stdout: str
    stderr: str
    duration_sec: float
    killed: bool
    kill_reason: str  # "none" | "timeout"


def _descendants(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.Error:
        return []


def _signal_group(pid: int, sig: int) -> None:
    # start_new_session=True: pgid совпадает с pid лидера
    with contextlib.suppress(ProcessLookupError, PermissionError, AttributeError):
        os.killpg(pid, sig)


def _stop(proc: subprocess.Popen, grace_sec: float) -> None:
    """
    Останавливает git вместе с потомками (хуки, pager, ssh, credential-helper):
    SIGTERM группе и дереву, через grace_sec - SIGKILL тем, кто остался.
    Дерево снимаем до сигнала: после смерти лидера внуки уже не найдутся по ppid.
    """
    tree = _descendants(proc.pid)
    _signal_group(proc.pid, signal.SIGTERM)
    for child in tree:
        with contextlib.suppress(psutil.Error):
            child.terminate()
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()

    try:
        proc.wait(timeout=grace_sec)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()

    _, alive = psutil.wait_procs(tree, timeout=min(grace_sec, 0.5))
    for child in alive:
        with contextlib.suppress(psutil.Error):
            child.kill()


def _read_back(f: IO[bytes]) -> str:
    f.seek(0)
    return f.read().decode(errors="replace")


def run_on_host_with_limits(
    argv: Sequence[str],
    *,
    timeout_sec: float,
    grace_kill_sec: float,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> RunResult:
    """
    Запускает argv без shell, в своей сессии, с тайм-аутом по wall-clock.

    Вывод пишется во временные файлы (пайпы не переполнятся), поэтому при
    тайм-ауте отдаём то, что процесс успел напечатать.
    stdin закрыт: git не должен повиснуть на вопросе к пользователю.
    OSError при запуске (нет бинаря, нет cwd) пробрасывается вызывающему.
    """
    started = time.monotonic()
    kill_reason = "none"

    with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
        proc = subprocess.Popen(
            list(argv),
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=out,
            stderr=err,
            start_new_session=True,
        )
        try:
            proc.wait(timeout=timeout_sec)
        except subprocess.TimeoutExpired:
            kill_reason = "timeout"
            _stop(proc, grace_kill_sec)
        except KeyboardInterrupt:
            # своя сессия - Ctrl-C до git не доходит, гасим сами
            _stop(proc, grace_kill_sec)
            raise
        stdout, stderr = _read_back(out), _read_back(err)

    return RunResult(
        code=proc.returncode,
        stdout=stdout,
        stderr=stderr,
        duration_sec=round(time.monotonic() - started, 3),
        killed=kill_reason != "none",
        kill_reason=kill_reason,
    )
