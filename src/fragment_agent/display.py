# display.py
# All terminal output for the durable sandbox agent.
#
# This module owns presentation entirely. harness.py and tools.py never
# format strings; they call named functions here.
#
# Colour language:
#   cyan: loop state transitions / routing
#   blue: model turns
#   yellow: durability (step replays) and liveness
#   green: success / summaries
#   red: failures, halts
#   magenta: tool calls and results

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ")
    if len(value) > max_len:
        return escape(value[:max_len]) + "…"
    return escape(value)


def _args(arguments: str) -> str:
    try:
        return json.dumps(json.loads(arguments))
    except (json.JSONDecodeError, TypeError):
        return arguments


# ---------------------------------------------------------------------------
# Run entry
# ---------------------------------------------------------------------------


def banner(model: str, template: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Durable Sandbox Agent[/bold cyan]\n"
            "[dim]Tool-calling loop with replay-safe steps[/dim]\n\n"
            f"[dim]Model    :[/dim] [white]{escape(model)}[/white]\n"
            f"[dim]Template :[/dim] [white]{escape(template)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def run_received(prompt: str, run_id: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW RUN[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("INSTRUCTION", "cyan"),
            subtitle=f"[dim]run {escape(run_id)}[/dim]",
            border_style="cyan",
            padding=(0, 2),
        )
    )


def state_changed(state) -> None:
    console.print(_label("LOOP", "cyan"), f"[cyan] → {state.value.upper()}[/cyan]")


# ---------------------------------------------------------------------------
# Provisioning / liveness
# ---------------------------------------------------------------------------


def sandbox_ready(sandbox_id: str, url: str) -> None:
    console.print(
        f"  [bold green]✓ Sandbox[/bold green] [white]{escape(sandbox_id)}[/white]  [dim]{escape(url)}[/dim]"
    )


def probe_result(outcome) -> None:
    colors = {"up": "green", "started": "green", "timeout": "yellow", "error": "red"}
    color = colors.get(outcome.status.value, "yellow")
    detail = f"  [dim]{_mono(outcome.detail)}[/dim]" if outcome.detail else ""
    console.print(f"  [yellow]↳ Dev server[/yellow] [bold {color}]{outcome.status.value}[/bold {color}]{detail}")


def public_url_status(url: str, status: str) -> None:
    console.print(f"  [yellow]↳ Public URL[/yellow] [dim]{escape(url)}[/dim] → [white]{escape(status)}[/white]")


def step_replayed(name: str) -> None:
    console.print(f"  [dim yellow]↺ replayed committed step[/dim yellow] [yellow]{escape(name)}[/yellow]")


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


def turn_start(index: int, limit: int) -> None:
    console.print()
    console.print(f"[bold blue]  TURN [{index}/{limit}][/bold blue]")


def model_text(text: str) -> None:
    console.print(f"  [blue]Model[/blue]    [dim white]{_mono(text, 200)}[/dim white]")


def tool_call(name: str, arguments: str) -> None:
    console.print(
        f"  [magenta]Tool[/magenta]     [bold white]{escape(name)}[/bold white]"
        f"  [dim]{_mono(_args(arguments), 140)}[/dim]"
    )


def tool_result(result: str) -> None:
    style = "red" if result.startswith("Error:") else "white"
    console.print(f"  [magenta]Result[/magenta]   [{style}]{_mono(result, 140)}[/{style}]")


def tool_not_found(tool_name: str) -> None:
    console.print(
        f"  [bold red]✗ Tool {escape(repr(tool_name))} is not registered.[/bold red] "
        "[dim]Reporting back to the model.[/dim]"
    )


def summary_recorded(summary: str, source: str) -> None:
    console.print(
        f"  [bold green]✓ Summary[/bold green] [dim]({escape(source)})[/dim] [white]{_mono(summary, 160)}[/white]"
    )


def terminated(reason: str) -> None:
    console.print()
    console.print(Rule(f"[cyan]LOOP STOPPED — {escape(reason)}[/cyan]", style="cyan"))


# ---------------------------------------------------------------------------
# Final result
# ---------------------------------------------------------------------------


def final_result(result) -> None:
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold green", padding=(0, 1))
    table.add_column("File", style="white")
    table.add_column("Bytes", justify="right", style="dim")
    for path, content in sorted(result.files.items()):
        table.add_row(Text(path), str(len(content)))

    if result.summary:
        summary = f"[white]{escape(result.summary)}[/white]"
    else:
        summary = "[dim]no summary produced[/dim]"

    console.print()
    console.print(
        Panel(
            f"{summary}\n\n"
            f"[dim]Sandbox:[/dim] [white]{escape(result.sandbox_url)}[/white]",
            title=_label(result.title.upper(), "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    if result.files:
        console.print(table)
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
