# display.py
# All terminal output for the warehouse assistant.
#
# This module owns presentation entirely. assistant.py and tools.py never
# format strings for the terminal; they call named functions here.
#
# Colour language:
#   cyan: orchestration / routing events
#   blue: backend calls and responses
#   yellow: bounds and degraded outcomes
#   green: final answers
#   red: failures and diagnostics
#   magenta: tool internals (call / progress / result)

import json

from rich.console import Console
from rich.markup import escape
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from warehouse_assistant.models import Message

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def banner(backend: str, model: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Warehouse Expert AI[/bold cyan]\n"
            "[dim]Asisten stok gudang dengan pemanggilan tool read-only[/dim]\n\n"
            f"[dim]Backend :[/dim] [white]{backend}[/white]\n"
            f"[dim]Model   :[/dim] [white]{model}[/white]\n\n"
            "[dim]/clear untuk menghapus riwayat, /exit untuk keluar[/dim]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def transcript_reset(greeting: Message) -> None:
    console.print()
    console.print(Rule("[cyan]RIWAYAT DIBERSIHKAN[/cyan]", style="cyan"))
    assistant_message(greeting)


def offline(diagnostic: str) -> None:
    console.print()
    console.print(_label("OFFLINE", "red"), f"[red] {escape(diagnostic)}[/red]")


def busy() -> None:
    console.print(_label("BUSY", "yellow"), "[yellow] Permintaan sebelumnya masih diproses.[/yellow]")


# ---------------------------------------------------------------------------
# Request / backend
# ---------------------------------------------------------------------------


def request_received(text: str) -> None:
    console.print()
    console.print(Rule("[cyan]PERMINTAAN BARU[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(text)}[/white]",
            title=_label("USER", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def calling_backend(iteration: int) -> None:
    if iteration == 0:
        message = "Menghubungi AI Cloud…"
    else:
        message = f"AI sedang menganalisa data gudang… (putaran {iteration})"
    console.print(_label("BACKEND", "blue"), f"[blue] → {message}[/blue]")


def round_start(iteration: int, bound: int, call_count: int) -> None:
    console.print()
    console.print(
        f"[bold cyan]  ROUND [{iteration}/{bound}][/bold cyan]  "
        f"[white]{call_count} function call(s) requested[/white]"
    )


def bound_reached(bound: int) -> None:
    console.print()
    console.print(
        _label("LOOP", "yellow"),
        f"[yellow] Batas {bound} putaran tercapai, berhenti memanggil tool.[/yellow]",
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def tool_call(name: str, args: dict) -> None:
    console.print(
        f"  [magenta]Call[/magenta]     [bold white]{escape(name)}[/bold white]"
        f"  [dim]{escape(json.dumps(args, default=str))}[/dim]"
    )


def tool_progress(message: str) -> None:
    console.print(f"  [magenta]Progress[/magenta] [dim white]{escape(message)}[/dim white]")


def tool_result(name: str, result: dict) -> None:
    style = "red" if "error" in result else "white"
    console.print(
        f"  [magenta]Result[/magenta]   [{style}]{escape(_mono(json.dumps(result, default=str), 140))}[/{style}]"
    )


def tool_error(name: str, exc: Exception) -> None:
    console.print(
        f"  [bold red]✗ {escape(name)} failed[/bold red]  [dim]{type(exc).__name__}: {escape(str(exc))}[/dim]"
    )


def tool_not_found(name: str) -> None:
    console.print(
        f"  [bold red]✗ Tool {escape(repr(name))} is not registered.[/bold red]"
        "  [dim]Returning an error payload to the backend.[/dim]"
    )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


def assistant_message(message: Message) -> None:
    console.print()
    console.print(
        Panel(
            Markdown(message.content),
            title=_label("ASSISTANT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )


def no_text_answer(message: Message) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(message.content)}[/white]",
            title=_label("NO TEXT ANSWER", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def failure(message: Message, diagnostic: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(message.content)}[/white]\n\n"
            f"[bold red]Diagnosa Sistem:[/bold red] [red]{escape(diagnostic)}[/red]",
            title=_label("GAGAL", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
