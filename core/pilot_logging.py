# core/pilot_logging.py
from __future__ import annotations
import json, re, os, io
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, Dict, List

# Корень ~/.gitpilot (или GITPILOT_HOME)
def pilot_home() -> Path:
    override = os.environ.get("GITPILOT_HOME")
    if override:
        return Path(os.path.expanduser(override))
    return Path(os.path.expanduser("~")) / ".gitpilot"

def _logs_dir() -> Path:
    base = pilot_home() / "logs"
    base.mkdir(parents=True, exist_ok=True)
    return base

_SECRET_PATTERNS = [
    (re.compile(r"AIza[0-9A-Za-z_\-]{20,}"), "***"),           # Google / Gemini
    (re.compile(r"gsk_[A-Za-z0-9]{20,}"), "***"),              # Groq
    (re.compile(r"sk-[A-Za-z0-9]{20,}"), "***"),               # OpenAI-подобные ключи
    (re.compile(r"ghp_[A-Za-z0-9]{20,}"), "***"),              # GitHub PAT
    (re.compile(r"(?i)([?&]key=)[^&\s\"']+"), r"\1***"),       # URL остаётся читаемым
    (re.compile(r"(?i)api[_-]?key\s*[:=]\s*([^\s\"']+)"), "***"),
    (re.compile(r"(?i)authorization:\s*bearer\s+[^\s]+"), "***"),
]

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

def _mask_string(s: str) -> str:
    masked = s
    for pat, repl in _SECRET_PATTERNS:
        masked = pat.sub(repl, masked)
    return masked

def _mask_obj(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _mask_obj(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_mask_obj(v) for v in obj]
    if isinstance(obj, bytes):
        obj = obj.decode("utf-8", "replace")
    if isinstance(obj, str):
        return _mask_string(obj)
    return obj

def preview_text(s: str | None, limit: int = 4096) -> str:
    """Обрезает stdout/stderr до разумного размера, чтобы не раздувать лог."""
    if not s:
        return ""
    if len(s) > limit:
        return s[:limit] + f"\n...[truncated {len(s) - limit} chars]"
    return s

class JsonlLogger:
    """Запись событий в logs/YYYY-MM-DD.jsonl с маскированием секретов.

    Папка вычисляется при каждой записи: GITPILOT_HOME может смениться
    после импорта (тесты, другой профиль).

    Журнал вспомогательный: если папку нельзя создать или файл не пишется,
    write() возвращает False и кладёт причину в last_error, а не роняет
    генерацию или уже выполненную git-команду.
    """
    def __init__(self, dirpath: Path | None = None):
        self._dir = dirpath
        self.last_error: str | None = None

    @property
    def dir(self) -> Path:
        if self._dir is not None:
            self._dir.mkdir(parents=True, exist_ok=True)
            return self._dir
        return _logs_dir()

    def path_for(self, date: str) -> Path:
        return self.dir / f"{date}.jsonl"

    def write(self, event: Dict[str, Any]) -> bool:
        event = dict(event)
        event.setdefault("ts", now_utc_iso())
        safe = _mask_obj(event)
        date = event["ts"][:10]  # YYYY-MM-DD
        try:
            with io.open(self.path_for(date), "a", encoding="utf-8") as f:
                f.write(json.dumps(safe, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            self.last_error = f"{type(e).__name__}: {e}"
            return False
        self.last_error = None
        return True

    def tail(self, n: int = 20) -> List[Dict[str, Any]]:
        """Последние n событий за сегодня (UTC). Битые строки пропускаем."""
        try:
            path = self.path_for(now_utc_iso()[:10])
            if not path.exists():
                return []
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            self.last_error = f"{type(e).__name__}: {e}"
            return []
        out: List[Dict[str, Any]] = []
        for line in lines[-n:] if n > 0 else []:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return out

# Удобный синглтон
logger = JsonlLogger()
