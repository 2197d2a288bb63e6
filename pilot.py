# pilot.py - терминальный хост GitPilot (REPL + подкоманды)

import os
import sys
import json
from typing import Callable, Optional

from rich import print
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from core.config import PilotSettings, load_settings
from core.executor import ExecutionResult, GitExecutor, InjectionError
from core.inspector import RepositoryInspector
from core.pilot_logging import logger
from pilot_brain import MODEL_ALIASES, MODEL_REGISTRY, format_context, generate_command, resolve_model
from safety_rules import RISK_LABEL, assess_risk

# =====================================================
# Рендеринг
# =====================================================
def print_status(repo_path: str) -> None:
    snap = RepositoryInspector(repo_path).snapshot()
    style = "red" if snap.error else "cyan"
    print(Panel.fit(format_context(snap), title=f"📁 {repo_path}", border_style=style))


def print_models(settings: PilotSettings) -> None:
    current = resolve_model(settings.default_model)
    aliases = {v: k for k, v in MODEL_ALIASES.items()}
    t = Table(title="Models")
    t.add_column("#", justify="right")
    t.add_column("Name")
    t.add_column("Provider")
    t.add_column("Setting")
    t.add_column("Key")
    for key, info in MODEL_REGISTRY.items():
        has_key = settings.gemini_api_key if info.provider == "gemini" else settings.groq_api_key
        mark = "[bold green]●[/bold green] " if info.key == current.key else ""
        t.add_row(key, mark + info.name, info.provider, aliases.get(key, ""), "✅" if has_key else "-")
    print(t)


def print_logs(count: str | None = None) -> None:
    try:
        n = int(count) if count else 20
    except ValueError:
        n = 20
    events = logger.tail(n)
    if not events:
        if logger.last_error:
            print(f"[yellow]Журнал недоступен: {logger.last_error}[/yellow]")
            return
        print("[dim]За сегодня событий нет.[/dim]")
        return
    for ev in events:
        print(json.dumps(ev, ensure_ascii=False))


def render_result(result: ExecutionResult) -> None:
    for w in result.warnings:
        print(f"[yellow]{w}[/yellow]")
    if result.success:
        body = (result.output or "").strip() or "Command executed successfully"
        if result.error.strip():
            body += f"\n\n[dim]{result.error.strip()}[/dim]"
        print(Panel.fit(f"✅ {body}", border_style="green", padding=(1, 2)))
    else:
        body = (result.error or "").strip() or "Command execution failed"
        if result.output.strip():
            body = result.output.strip() + "\n\n" + body
        print(Panel.fit(f"❌ {body}", border_style="red", padding=(1, 2)))


def print_help() -> None:
    print(Panel.fit(
        "Просто опиши, что сделать с репозиторием, например:\n"
        "  [bold]create a new branch for user authentication[/bold]\n\n"
        "Встроенные команды:\n"
        "  [bold]status[/bold]            - состояние репозитория\n"
        "  [bold]models[/bold]            - доступные модели и ключи\n"
        "  [bold]logs [N][/bold]          - последние события из журнала\n"
        "  [bold]preview <git cmd>[/bold] - что будет выполнено (без запуска)\n"
        "  [bold]dry <запрос>[/bold]      - сгенерировать команду, но не выполнять\n"
        "  [bold]exit[/bold]              - выход",
        title="GitPilot", border_style="cyan"))


# =====================================================
# Один запрос: снимок → генерация → подтверждение → запуск
# =====================================================
def handle_request(
    user_text: str,
    settings: PilotSettings,
    repo_path: str,
    dry_run: bool = False,
    confirm: Callable[..., bool] = Confirm.ask,
) -> Optional[ExecutionResult]:
    inspector = RepositoryInspector(repo_path)
    if not inspector.probe():
        print(Panel.fit("Not a Git repository. Please open a Git repository.", border_style="red"))
        return None

    if not settings.has_any_key:
        print(Panel.fit(
            "No API key configured. Set GEMINI_API_KEY or GROQ_API_KEY "
            "(env, .env or ~/.gitpilot/config.yml).",
            border_style="red"))
        return None

    snapshot = inspector.snapshot()
    if snapshot.error:
        print(Panel.fit(snapshot.error, border_style="red"))
        return None

    info = resolve_model(settings.default_model)
    print(f"[dim]🤖 {info.name} думает...[/dim]")
    generated = generate_command(
        user_text,
        snapshot,
        info.key,
        gemini_api_key=settings.gemini_api_key,
        groq_api_key=settings.groq_api_key,
    )
    if not generated.command:
        print(Panel.fit(f"Failed to generate command: {generated.explanation}", border_style="red"))
        if generated.warning:
            print(f"[yellow]{generated.warning}[/yellow]")
        return None

    executor = GitExecutor(repo_path)
    risk = assess_risk(generated.command)
    border = "red" if risk == "destructive" else "green"
    body = f"[bold]{generated.command}[/bold]"
    if generated.explanation:
        body += f"\n\n{generated.explanation}"
    if generated.warning:
        body += f"\n\n[yellow]{generated.warning}[/yellow]"
    print(Panel.fit(body, title=f"Команда ({RISK_LABEL[risk]})", border_style=border, padding=(1, 2)))

    try:
        if dry_run:
            result = executor.preview(generated.command)
            render_result(result)
            return result

        if executor.is_destructive(generated.command) and not settings.auto_confirm:
            if not confirm(f"Execute potentially destructive command: {generated.command}?", default=False):
                print("[dim]Operation cancelled.[/dim]")
                return None

        result = executor.execute(generated.command)
    except InjectionError as e:
        print(Panel.fit(f"⛔ {e}", border_style="red"))
        return None

    render_result(result)
    return result


def handle_preview(command: str, repo_path: str) -> Optional[ExecutionResult]:
    try:
        result = GitExecutor(repo_path).preview(command)
    except InjectionError as e:
        print(Panel.fit(f"⛔ {e}", border_style="red"))
        return None
    render_result(result)
    return result


# =====================================================
# REPL
# =====================================================
def main():
    settings = load_settings()
    repo_path = os.getcwd()
    print("[bold green]🤖 GitPilot запущен. Жду запрос...[/bold green]")
    print("[dim]Подсказка: набери [bold]help[/bold] для списка встроенных команд[/dim]")

    while True:
        try:
            user_input = Prompt.ask("[bold]>[/bold]")
        except (EOFError, KeyboardInterrupt):
            print()
            break
        text = user_input.strip()
        if not text:
            continue

        head, _, rest = text.partition(" ")
        head = head.lower()
        if head in ("exit", "quit"):
            break
        if head == "help":
            print_help()
        elif head == "status":
            print_status(repo_path)
        elif head == "models":
            print_models(settings)
        elif head == "logs":
            print_logs(rest.strip() or None)
        elif head == "preview" and rest.strip():
            handle_preview(rest.strip(), repo_path)
        elif head == "dry" and rest.strip():
            handle_request(rest.strip(), settings, repo_path, dry_run=True)
        else:
            handle_request(text, settings, repo_path)


def cli_entry():
    args = sys.argv[1:]
    repo_path = os.getcwd()

    if not args:
        main()
        return

    cmd, rest = args[0], args[1:]
    if cmd == "status":
        print_status(repo_path)
    elif cmd == "models":
        print_models(load_settings())
    elif cmd == "logs":
        print_logs(rest[0] if rest else None)
    elif cmd == "preview":
        if not rest:
            print("Использование: gitpilot preview <git-команда>")
            sys.exit(2)
        if handle_preview(" ".join(rest), repo_path) is None:
            sys.exit(1)
    elif cmd in ("ask", "dry"):
        if not rest:
            print(f"Использование: gitpilot {cmd} <запрос на естественном языке>")
            sys.exit(2)
        result = handle_request(" ".join(rest), load_settings(), repo_path, dry_run=(cmd == "dry"))
        if result is None or not result.success:
            sys.exit(1)
    elif cmd in ("-h", "--help", "help"):
        print_help()
    else:
        print(f"Неизвестная команда: {cmd}. Запусти без аргументов для интерактивного режима.")
        sys.exit(2)


if __name__ == "__main__":
    cli_entry()
