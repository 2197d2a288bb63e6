# safety_rules.py

# Метки риска для красивого вывода
RISK_LABEL = {
    "safe": "safe",
    "destructive": "destructive",
}

# --- Паттерны ---

# Разрушительные git-операции: подстрока (в нижнем регистре) -> предупреждение.
# Порядок важен - в нём же отдаются предупреждения.
DESTRUCTIVE_PATTERNS = [
    ("reset --hard", "This will discard all uncommitted changes"),
    ("clean -f", "This will delete untracked files permanently"),
    ("push --force", "This will overwrite remote history"),
    ("rebase", "This will rewrite commit history"),
    ("cherry-pick", "This may create conflicts"),
    ("merge --no-ff", "This will create a merge commit"),
]

WARNING_GLYPH = "⚠️"


def _matching(command: str):
    cmd = (command or "").lower()
    for pattern, warning in DESTRUCTIVE_PATTERNS:
        if pattern in cmd:
            yield pattern, warning


def warnings_for(command: str) -> list[str]:
    """
    Все предупреждения для команды - по одному на каждый совпавший паттерн,
    в порядке таблицы. Ничего не блокирует: решение о подтверждении принимает хост.
    """
    return [f"{WARNING_GLYPH} {warning}" for _, warning in _matching(command)]


def is_destructive(command: str) -> bool:
    return any(True for _ in _matching(command))


def assess_risk(command: str) -> str:
    """Возвращает 'destructive' | 'safe'."""
    return "destructive" if is_destructive(command) else "safe"
