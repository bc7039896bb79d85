"""Rich-powered console output for ctxpack."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ctxpack import __version__
from ctxpack.context.models import AssemblyOutput
from ctxpack.exceptions import MergeConflictError, OverBudgetRequired, ResolutionConflict
from ctxpack.resolver.models import ResolutionResult

_SCOPE_STYLE = {"global": "blue", "project": "cyan", "local": "magenta"}


class Console:
    """Terminal output for ctxpack using Rich."""

    def __init__(self) -> None:
        self.console = RichConsole()

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]ctxpack[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Versioned behavioral context for AI coding agents[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def show_packs(self, records: list[dict]) -> None:
        """Display installed pack records."""
        table = Table(title="Installed Packs", border_style="cyan")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Pack", style="bold")
        table.add_column("Version")
        table.add_column("Scope")
        table.add_column("Direct", justify="center")
        table.add_column("Digest", style="dim")

        for r in records:
            style = _SCOPE_STYLE.get(r["scope"], "white")
            table.add_row(
                str(r["install_order"]),
                r["identity"],
                r["version"],
                f"[{style}]{r['scope']}[/{style}]",
                "✓" if r["direct"] else "",
                r["content_digest"][:12],
            )
        self.console.print(table)

    def show_resolution(self, result: ResolutionResult) -> None:
        """Display a resolution as a dependency tree."""
        tree = Tree(f"[bold cyan]Resolution[/bold cyan] [dim]{result.digest[:12]}[/dim]")
        children: dict[str, list[tuple[str, bool]]] = {}
        has_parent: set[str] = set()
        for src, dst, optional in result.edges:
            children.setdefault(src, []).append((dst, optional))
            has_parent.add(dst)

        def add(node: Tree, identity: str, optional: bool, seen: set[str]) -> None:
            pack = result.get(identity)
            label = f"[bold]{pack.ref}[/bold] [dim]({pack.scope.value})[/dim]"
            if optional:
                label += " [yellow]optional[/yellow]"
            branch = node.add(label)
            if identity in seen:
                return
            for child, child_optional in children.get(identity, []):
                add(branch, child, child_optional, seen | {identity})

        for identity in sorted(i for i, _ in result.refs() if i not in has_parent):
            add(tree, identity, False, set())
        self.console.print(tree)

        for drop in result.dropped:
            self.warning(f"Dropped optional dependency {drop.record.describe()} ({drop.reason})")

    def show_assembly(self, output: AssemblyOutput, hit: bool = False) -> None:
        """Display assembly statistics."""
        table = Table(title="Assembly", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right", style="cyan")

        table.add_row("Packs", str(len(output.packs)))
        table.add_row("Units included", str(len(output.items)))
        table.add_row("Dropped by budget", str(len(output.dropped)))
        table.add_row("Discarded by merge", str(len(output.discarded)))
        table.add_row("Bytes", f"{output.bytes_used:,} / {output.budget:,}")
        table.add_row("Budget used", f"{output.budget_used_pct:.0f}%")
        table.add_row("Cache", "hit" if hit else "miss")
        self.console.print(table)

        for conflict in output.conflicts:
            self.warning(f"Override conflict {conflict.describe()}")

    def show_error(self, error: Exception) -> None:
        """Render a structured engine error."""
        if isinstance(error, ResolutionConflict):
            self.error(f"Resolution failed ({error.kind})")
            self.console.print(f"[dim]{escape(str(error))}[/dim]")
        elif isinstance(error, MergeConflictError):
            self.error("Unresolved override conflicts (use --best-effort to arbitrate):")
            for conflict in error.conflicts:
                self.console.print(f"  [yellow]{conflict.describe()}[/yellow]")
        elif isinstance(error, OverBudgetRequired):
            self.error(str(error))
            for unit_id in error.unit_ids:
                self.console.print(f"  [dim]{unit_id}[/dim]")
        else:
            self.error(str(error))
