# core/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

import yaml
from dotenv import load_dotenv, find_dotenv

from core.pilot_logging import pilot_home

DEFAULT_MODEL = "gemini"

_TRUTHY = {"1", "true", "yes", "on", "y", "да"}


def default_config_path() -> Path:
    return pilot_home() / "config.yml"


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError):
        # не валим запуск - вернём пустой конфиг
        return {}


def load_user_config(path: Optional[str] = None) -> dict:
    return _read_yaml(Path(path) if path else default_config_path())


def clean_api_key(raw: object) -> Optional[str]:
    """
    Приводит ключ из .env/YAML к нормальному виду:
    - убираем пробелы и кавычки вокруг,
    - если случайно вставили несколько строк - берём первую.
    Пустое значение -> None.
    """
    if raw is None:
        return None
    key = str(raw).strip().strip('"').strip("'")
    if "\n" in key:
        key = key.splitlines()[0].strip()
    return key or None


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class PilotSettings:
    gemini_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    auto_confirm: bool = False

    @property
    def has_any_key(self) -> bool:
        return bool(self.gemini_api_key or self.groq_api_key)


def load_settings(path: Optional[str] = None, use_dotenv: bool = True) -> PilotSettings:
    """
    Собирает настройки: окружение (+ .env) поверх ~/.gitpilot/config.yml поверх дефолтов.

    Пример config.yml:
        gemini_api_key: AIza...
        groq_api_key: gsk_...
        default_model: groq-llama-3.3   # gemini | groq-llama-3.1 | groq-llama-3.3 | deepseek | 1..4
        auto_confirm: false
    """
    if use_dotenv:
        # ищем .env в текущем каталоге проекта; реальное окружение не перетираем
        load_dotenv(find_dotenv(usecwd=True))

    cfg = load_user_config(path)

    def pick(env_name: str, cfg_name: str):
        val = os.environ.get(env_name)
        if val is not None and val.strip():
            return val
        return cfg.get(cfg_name)

    model = pick("GITPILOT_DEFAULT_MODEL", "default_model")
    return PilotSettings(
        gemini_api_key=clean_api_key(pick("GEMINI_API_KEY", "gemini_api_key")),
        groq_api_key=clean_api_key(pick("GROQ_API_KEY", "groq_api_key")),
        default_model=str(model).strip() if model else DEFAULT_MODEL,
        auto_confirm=_as_bool(pick("GITPILOT_AUTO_CONFIRM", "auto_confirm")),
    )
