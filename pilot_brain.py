import json
import re
import urllib.error
import urllib.request
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from openai import OpenAI, OpenAIError

from core.inspector import RepositorySnapshot
from core.pilot_logging import logger

COMMAND_PREFIX = "git "

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={key}"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

SYSTEM_PROMPT = (
    "You are GitPilot, an AI assistant that converts natural language to Git commands. "
    "CRITICAL: Always respond with ONLY a valid JSON object in this exact format: "
    '{"command": "git ...", "explanation": "...", "warning": "..." or null}. '
    "The command should be a valid Git command or null if no command can be generated. "
    "Do not include any text before or after the JSON object."
)

RETRY_HINT = "Please try again or use manual Git commands"
PARSE_FAILED = "Failed to parse AI response"


class ConfigurationError(RuntimeError):
    """Нет ключа для выбранного провайдера."""


class ProviderError(RuntimeError):
    """Сеть / HTTP / неожиданный ответ провайдера."""


@dataclass(frozen=True)
class GeneratedCommand:
    command: Optional[str]
    explanation: str = ""
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ModelInfo:
    key: str
    name: str
    provider: str
    model: str


# Реестр моделей; первая - по умолчанию
MODEL_REGISTRY = {
    "1": ModelInfo("1", "Gemini 2.0 Flash", "gemini", "gemini-2.0-flash"),
    "2": ModelInfo("2", "Llama 3.1 8B Instant", "groq", "llama-3.1-8b-instant"),
    "3": ModelInfo("3", "Llama 3.3 70B Versatile", "groq", "llama-3.3-70b-versatile"),
    "4": ModelInfo("4", "DeepSeek R1 Distill Llama 70B", "groq", "deepseek-r1-distill-llama-70b"),
}
DEFAULT_MODEL_KEY = "1"

# Имена из настроек -> ключ реестра
MODEL_ALIASES = {
    "gemini": "1",
    "groq-llama-3.1": "2",
    "groq-llama-3.3": "3",
    "deepseek": "4",
}


def resolve_model(choice: Optional[str]) -> ModelInfo:
    """
    Ключ реестра ("1".."4"), алиас из настроек или id модели.
    Всё непонятное - модель по умолчанию; никогда не падает.
    """
    c = (str(choice) if choice is not None else "").strip()
    if c in MODEL_REGISTRY:
        return MODEL_REGISTRY[c]
    key = MODEL_ALIASES.get(c.lower())
    if key:
        return MODEL_REGISTRY[key]
    for info in MODEL_REGISTRY.values():
        if info.model == c:
            return info
    return MODEL_REGISTRY[DEFAULT_MODEL_KEY]


# ----------------------------- prompt ---------------------------------

def _js(value) -> str:
    # true/false/{} как в JSON - модели так понятнее
    return json.dumps(value, ensure_ascii=False)


def build_prompt(user_text: str, snapshot: RepositorySnapshot) -> str:
    return (
        "Based on the current Git repository state:\n"
        f"- Branch: {snapshot.branch or 'unknown'}\n"
        f"- Dirty: {_js(bool(snapshot.is_dirty))}\n"
        f"- Staged files: {snapshot.staged_files or 0}\n"
        f"- Unstaged files: {snapshot.unstaged_files or 0}\n"
        f"- Detached HEAD: {_js(bool(snapshot.is_detached))}\n"
        f"- Remote status: {_js(snapshot.remote_status or {})}\n"
        "\n"
        f"User request: {user_text}\n"
        "\n"
        "Provide the most appropriate Git command considering the current context. "
        "Respond with a JSON object containing 'command', 'explanation', and 'warning' fields."
    )


def format_context(snapshot: RepositorySnapshot) -> str:
    """Короткая человекочитаемая сводка снимка (для вывода в терминале)."""
    if snapshot.error:
        return f"Error: {snapshot.error}"

    lines = [
        f"Branch: {snapshot.branch or 'unknown'}",
        f"Dirty: {_js(bool(snapshot.is_dirty))}",
        f"Staged files: {snapshot.staged_files}",
        f"Unstaged files: {snapshot.unstaged_files}",
        f"Untracked files: {snapshot.untracked_files}",
        f"Stashes: {snapshot.stash_count}",
    ]
    remote = snapshot.remote_status or {}
    if remote.get("has_remote"):
        lines.append(f"Remote: {remote.get('ahead', 0)} ahead, {remote.get('behind', 0)} behind")
    commit = snapshot.last_commit or {}
    if commit:
        lines.append(f"Last commit: {commit.get('sha')} {commit.get('message')} ({commit.get('author')})")
    return "\n".join(lines)


# ----------------------------- providers ------------------------------

class TextProvider:
    """Провайдер текста: prompt + ключ -> сырой текст ответа модели."""

    label = "Provider"

    def __init__(self, model: str) -> None:
        self.model = model

    def generate(self, prompt: str, api_key: Optional[str]) -> str:
        if not api_key:
            raise ConfigurationError(f"{self.label} API key not configured")
        try:
            return self._request(prompt, api_key)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{self.label} API error: {e}") from e

    def _request(self, prompt: str, api_key: str) -> str:
        raise NotImplementedError


class GeminiProvider(TextProvider):
    label = "Gemini"

    def _request(self, prompt: str, api_key: str) -> str:
        url = GEMINI_URL.format(model=self.model, key=api_key)
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        req = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            # в тексте исключения есть URL с ключом - наружу отдаём только код
            raise ProviderError(f"Gemini API error: HTTP {e.code} {e.reason}") from None
        except urllib.error.URLError as e:
            raise ProviderError(f"Gemini API error: {e.reason}") from None

        try:
            return payload["candidates"][0]["content"]["parts"][0].get("text") or ""
        except (KeyError, IndexError, TypeError, AttributeError):
            return ""


class GroqProvider(TextProvider):
    label = "Groq"

    def _request(self, prompt: str, api_key: str) -> str:
        client = OpenAI(api_key=api_key, base_url=GROQ_BASE_URL, max_retries=0)
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.1,
                max_tokens=1000,
            )
        except OpenAIError as e:
            raise ProviderError(f"Groq API error: {e}") from e
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""


PROVIDERS = {
    "gemini": GeminiProvider,
    "groq": GroqProvider,
}


# ----------------------------- parsing --------------------------------

_EMBEDDED_JSON_RE = re.compile(r"\{[^}]*\"command\"[^}]*\}", flags=re.S)
_BACKTICK_CMD_RE = re.compile(r"`(git [^`]+)`")


def _from_mapping(data) -> Optional[GeneratedCommand]:
    if not isinstance(data, dict):
        return None
    cmd = data.get("command")
    cmd = cmd.strip() if isinstance(cmd, str) else None
    warning = data.get("warning")
    explanation = data.get("explanation")
    return GeneratedCommand(
        command=cmd or None,
        explanation=str(explanation) if explanation is not None else "",
        warning=str(warning) if warning is not None else None,
    )


def _parse_embedded_json(text: str) -> Optional[GeneratedCommand]:
    """JSON-объект с ключом "command" где-то внутри текста (например в ```json```)."""
    m = _EMBEDDED_JSON_RE.search(text)
    if not m:
        return None
    try:
        return _from_mapping(json.loads(m.group(0)))
    except json.JSONDecodeError:
        return None


def _parse_whole_json(text: str) -> Optional[GeneratedCommand]:
    raw = text.strip()
    if not raw.startswith("{"):
        return None
    try:
        return _from_mapping(json.loads(raw))
    except json.JSONDecodeError:
        return None


def _parse_lines(text: str) -> Optional[GeneratedCommand]:
    """
    Фоллбэк по строкам, если модель ответила прозой:
    - первая строка "git ..." или с `git ...` в бэктиках - команда;
    - первая строка Warning:/Note:/⚠️ - предупреждение;
      строка со словом "warning" - только если предупреждения ещё нет;
    - остальные строки до команды (без "git ", без ``` и `) - пояснение.
    """
    command: Optional[str] = None
    warning: Optional[str] = None
    explicit_warning = False
    explanation: list[str] = []

    for line in text.split("\n"):
        s = line.strip()

        if command is None:
            if s.startswith(COMMAND_PREFIX):
                command = s
            elif "`" + COMMAND_PREFIX in s:
                m = _BACKTICK_CMD_RE.search(s)
                if m:
                    command = m.group(1)

        if s.startswith("Warning:") or s.startswith("Note:") or "⚠️" in s:
            # явная пометка важнее строки, где слово "warning" просто встретилось
            if not explicit_warning:
                warning = s
                explicit_warning = True
        elif "warning" in s.lower() and warning is None:
            warning = s
        elif s and command is None and not s.startswith("```") and not s.startswith("`"):
            if COMMAND_PREFIX not in s:
                explanation.append(s)

    if command is None:
        return None

    command = command.strip()
    if command.startswith("`"):
        command = command[1:]
    if command.endswith("`"):
        command = command[:-1]
    command = command.strip()
    if not command.startswith(COMMAND_PREFIX):
        command = COMMAND_PREFIX + command

    return GeneratedCommand(command=command, explanation=" ".join(explanation), warning=warning)


# Порядок важен: первый непустой результат побеждает
_PARSERS: list[Callable[[str], Optional[GeneratedCommand]]] = [
    _parse_embedded_json,
    _parse_whole_json,
    _parse_lines,
]


def parse_response(text: str) -> GeneratedCommand:
    """Превращает сырой ответ модели в GeneratedCommand. Исходный текст не теряем."""
    raw = text or ""
    for parser in _PARSERS:
        try:
            result = parser(raw)
        except (ValueError, TypeError):
            continue
        if result is not None:
            return result
    return GeneratedCommand(command=None, explanation=raw, warning=PARSE_FAILED)


# ----------------------------- entry point ----------------------------

def generate_command(
    user_text: str,
    snapshot: RepositorySnapshot,
    model_choice: Optional[str] = DEFAULT_MODEL_KEY,
    *,
    gemini_api_key: Optional[str] = None,
    groq_api_key: Optional[str] = None,
) -> GeneratedCommand:
    """
    Запрос пользователя + снимок репозитория -> GeneratedCommand.
    Никогда не бросает: любая ошибка (нет ключа, сеть, ответ провайдера)
    превращается в GeneratedCommand(command=None, ...).
    """
    info = resolve_model(model_choice)
    keys = {"gemini": gemini_api_key, "groq": groq_api_key}

    try:
        provider = PROVIDERS[info.provider](info.model)
        raw = provider.generate(build_prompt(user_text, snapshot), keys.get(info.provider))
        result = parse_response(raw)
        error = None
    except Exception as e:
        result = GeneratedCommand(
            command=None,
            explanation=f"Failed to generate command: {e}",
            warning=RETRY_HINT,
        )
        error = str(e)

    logger.write({
        "kind": "generate",
        "model": info.model,
        "provider": info.provider,
        "user_input": user_text,
        "ok": result.command is not None,
        "command": result.command,
        "warning": result.warning,
        "error": error,
    })
    return result
