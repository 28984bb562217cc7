"""
CLI for safe-bash.

Runs the PreToolUse hook, explains verdicts, inspects and refreshes the
patterns document, and registers the hook in Claude Code settings.
"""

import json
import shutil
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from safebash import __version__
from safebash.config import HookConfig
from safebash.log import setup_logging
from safebash.policy import Deny, check_rules, decide
from safebash.refresh import fetch_patterns, touch_marker, update_needed
from safebash.rules import EMPTY, RuleSet, compile_builtin, load_user_file
from safebash.segmenter import split_command


console = Console()

# Bundled copy of the patterns document, used to seed a fresh install
_DATA_DIR = Path(__file__).parent / "data"
BUNDLED_PATTERNS = _DATA_DIR / "safe-bash-patterns.json"

SETTINGS_PATH = Path.home() / ".claude" / "settings.json"

# Substring identifying our entry in settings.json hooks
HOOK_MARKER = "safebash.hook"


@click.group()
@click.version_option(__version__, prog_name="safe-bash")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """safe-bash - command policy gate for Claude Code Bash calls."""
    setup_logging(verbose)


@main.command()
def hook():
    """Run as a PreToolUse hook: read the envelope on stdin, exit 0 (allow) or 2 (deny)."""
    from safebash.hook import main as hook_main

    hook_main()


def _explain_source(command: str, segments: list[str], builtin: RuleSet) -> str:
    for text in [command, *segments]:
        if check_rules(text, builtin.deny) is not None:
            return "built-in"
    return "patterns file"


@main.command()
@click.argument("command")
@click.option("--builtin-only", is_flag=True, help="Ignore the user patterns file")
def check(command: str, builtin_only: bool):
    """Evaluate COMMAND and show the verdict. Exits 2 when denied."""
    config = HookConfig.from_env()
    builtin = compile_builtin()
    user = EMPTY if builtin_only else load_user_file(config.patterns_path)
    segments = split_command(command)

    verdict = decide(command, builtin, user)

    if segments:
        console.print("[dim]Segments:[/dim]")
        for i, segment in enumerate(segments, 1):
            console.print(f"  [dim]{i}.[/dim] {escape(segment)}", highlight=False)

    if isinstance(verdict, Deny):
        source = _explain_source(command, segments, builtin)
        console.print(f"[red]DENY[/red] {escape(verdict.reason)} [dim]({source})[/dim]")
        sys.exit(2)

    console.print("[green]ALLOW[/green]")


def _rules_table(title: str, rules: RuleSet) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("#", style="dim", width=3)
    table.add_column("Kind", width=5)
    table.add_column("Pattern", style="cyan")
    table.add_column("Reason")

    index = 1
    for kind, entries in (("deny", rules.deny), ("allow", rules.allow)):
        style = "red" if kind == "deny" else "green"
        for rule in entries:
            table.add_row(str(index), f"[{style}]{kind}[/{style}]", escape(rule.pattern.pattern), escape(rule.reason))
            index += 1
    return table


@main.command()
@click.option("--builtin", "show_builtin", is_flag=True, help="Only show built-in patterns")
@click.option("--user", "show_user", is_flag=True, help="Only show patterns-file patterns")
def patterns(show_builtin: bool, show_user: bool):
    """List the built-in and patterns-file rules."""
    config = HookConfig.from_env()
    both = not show_builtin and not show_user

    if show_builtin or both:
        console.print(_rules_table("Built-in (cannot be overridden)", compile_builtin()))

    if show_user or both:
        user = load_user_file(config.patterns_path)
        if not len(user):
            console.print(f"[yellow]No patterns loaded from {config.patterns_path}[/yellow]")
        else:
            console.print(_rules_table(f"Patterns file (version {user.version or '?'})", user))


def _format_age(seconds: float) -> str:
    """Render an age in seconds as a short human string.

    >>> _format_age(42)
    '42s'
    >>> _format_age(3900)
    '1h 5m'
    """
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


@main.command()
def status():
    """Show patterns file, refresh marker and update settings."""
    config = HookConfig.from_env()
    user = load_user_file(config.patterns_path)

    if config.patterns_path.exists():
        doc_line = (
            f"Patterns file: {config.patterns_path}\n"
            f"Version: {user.version if user.version is not None else '?'}\n"
            f"Rules: {len(user.deny)} deny, {len(user.allow)} allow"
        )
    else:
        doc_line = f"Patterns file: {config.patterns_path} [yellow](missing - built-in rules only)[/yellow]"

    try:
        age = time.time() - config.marker_path.stat().st_mtime
        marker_line = f"Last update check: {_format_age(max(age, 0))} ago"
    except OSError:
        marker_line = "Last update check: never"

    stale = update_needed(config.marker_path, config.update_interval)
    state = "[yellow]stale[/yellow]" if stale else "[green]fresh[/green]"
    auto = "on" if config.auto_update else "[yellow]off[/yellow]"

    console.print(Panel(
        f"{doc_line}\n"
        f"Built-in rules: {len(compile_builtin().deny)} deny",
        title="Patterns",
    ))
    console.print(Panel(
        f"URL: {config.patterns_url}\n"
        f"{marker_line} ({state}, interval {_format_age(config.update_interval)})\n"
        f"Auto-update: {auto}",
        title="Updates",
    ))


@main.command()
@click.option("--url", help="Fetch from this URL instead of the configured one")
def update(url: str):
    """Fetch the patterns file now (validated, atomic replace)."""
    config = HookConfig.from_env()
    source = url or config.patterns_url

    touch_marker(config.marker_path)
    with console.status(f"Fetching {source}..."):
        ok = fetch_patterns(source, config.patterns_path)

    if not ok:
        console.print("[red][FAIL][/red] Update failed; existing patterns file left unchanged")
        sys.exit(1)

    user = load_user_file(config.patterns_path)
    console.print(
        f"[green][OK][/green] Updated {config.patterns_path} "
        f"({len(user.deny)} deny, {len(user.allow)} allow)"
    )


def _hook_command() -> str:
    # Prefer the python running this process
    python_exe = sys.executable
    if not python_exe or not Path(python_exe).exists():
        python_exe = shutil.which("python3") or shutil.which("python") or "python"
    # Forward slashes work on Windows too
    python_path = str(Path(python_exe)).replace("\\", "/")
    return f"{python_path} -m {HOOK_MARKER}"


def _load_settings(settings_path: Path) -> dict:
    if not settings_path.exists():
        return {}
    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red][FAIL][/red] Could not read {settings_path}: {e}")
        sys.exit(1)
    if not isinstance(data, dict):
        console.print(f"[red][FAIL][/red] {settings_path} is not a JSON object")
        sys.exit(1)
    return data


def _install_hook(existing: dict, settings_path: Path):
    """Register the PreToolUse Bash hook, upgrading an older command in place."""
    command_str = _hook_command()
    hooks = existing.setdefault("hooks", {})
    pre_tool_use = hooks.setdefault("PreToolUse", [])

    hook_index = None
    needs_upgrade = False
    for i, hook_entry in enumerate(pre_tool_use):
        if HOOK_MARKER in str(hook_entry):
            hook_index = i
            for h in hook_entry.get("hooks", []):
                if h.get("command", "") != command_str:
                    needs_upgrade = True
            break

    if hook_index is not None and not needs_upgrade:
        console.print("[yellow][-][/yellow] safe-bash hook already configured")
        return

    hook_entry = {
        "matcher": "Bash",
        "hooks": [{
            "type": "command",
            "command": command_str,
            "timeout": 10,
        }]
    }

    if hook_index is not None:
        pre_tool_use[hook_index] = hook_entry
        message = "[green][OK][/green] Updated safe-bash hook command"
    else:
        pre_tool_use.append(hook_entry)
        message = "[green][OK][/green] Installed safe-bash hook (PreToolUse, Bash)"

    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps(existing, indent=2), encoding="utf-8")
    console.print(message)


def _seed_patterns(config: HookConfig):
    if config.patterns_path.exists():
        console.print(f"[dim][-][/dim] Patterns file present: {config.patterns_path}")
        return
    if not BUNDLED_PATTERNS.exists():
        console.print("[yellow][-][/yellow] Bundled patterns not found; built-in rules only until next update")
        return
    config.hooks_dir.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(BUNDLED_PATTERNS, config.patterns_path)
    console.print(f"[green][OK][/green] Created patterns file: {config.patterns_path}")


@main.command()
def install():
    """Register the hook in ~/.claude/settings.json and seed the patterns file."""
    config = HookConfig.from_env()
    settings = _load_settings(SETTINGS_PATH)
    _install_hook(settings, SETTINGS_PATH)
    _seed_patterns(config)


@main.command()
def uninstall():
    """Remove the hook from ~/.claude/settings.json. Leaves the patterns file."""
    if not SETTINGS_PATH.exists():
        console.print("[yellow][-][/yellow] No settings file, nothing to remove")
        return

    settings = _load_settings(SETTINGS_PATH)
    entries = settings.get("hooks", {}).get("PreToolUse", [])
    kept = [h for h in entries if HOOK_MARKER not in str(h)]

    if len(kept) == len(entries):
        console.print("[yellow][-][/yellow] safe-bash hook not installed")
        return

    settings["hooks"]["PreToolUse"] = kept
    SETTINGS_PATH.write_text(json.dumps(settings, indent=2), encoding="utf-8")
    console.print("[green][OK][/green] Removed safe-bash hook")


if __name__ == "__main__":
    main()
