import subprocess
from pathlib import Path

import pytest

_ENV_KEYS = (
    "GEMINI_API_KEY",
    "GROQ_API_KEY",
    "GITPILOT_DEFAULT_MODEL",
    "GITPILOT_AUTO_CONFIRM",
)


@pytest.fixture(autouse=True)
def pilot_home(tmp_path, monkeypatch):
    """Журнал и конфиг - во временной папке, ключи из окружения не утекают в тесты."""
    home = tmp_path / "gitpilot-home"
    monkeypatch.setenv("GITPILOT_HOME", str(home))
    for name in _ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    return home


def git(repo: Path, *args: str) -> str:
    p = subprocess.run(
        [
            "git",
            "-c", "user.name=GitPilot Test",
            "-c", "user.email=test@example.com",
            "-c", "commit.gpgsign=false",
            *args,
        ],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return p.stdout


@pytest.fixture
def git_repo(tmp_path) -> Path:
    """Одноразовый репозиторий с двумя коммитами на ветке main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    (repo / "README.md").write_text("hello\n", encoding="utf-8")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "initial commit")
    (repo / "app.txt").write_text("v1\n", encoding="utf-8")
    git(repo, "add", "app.txt")
    git(repo, "commit", "-q", "-m", "add app")
    return repo


@pytest.fixture
def unwritable_home(tmp_path, monkeypatch) -> Path:
    """GITPILOT_HOME внутри обычного файла: папку logs создать нельзя."""
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory\n", encoding="utf-8")
    home = blocker / "home"
    monkeypatch.setenv("GITPILOT_HOME", str(home))
    return home
