# src/kuberelease/cli/formatter.py
from typing import Dict, List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kuberelease.manifest.annotator import AnnotationReport


class ReleaseFormatter:
    """
    ReleaseFormatter: renders CLI output.
    Merged values as highlighted YAML, annotation plans as tables.
    """

    def __init__(self, console: Console):
        self.console = console

    def show_values(self, release_name: str, values_yaml: str):
        if not values_yaml.strip():
            self.console.print(f"[dim]ℹ No values configured for {release_name}.[/dim]")
            return
        syntax = Syntax(values_yaml.rstrip(), "yaml", theme="monokai", line_numbers=False)
        self.console.print(Panel(syntax, title=f"Merged values: {release_name}", border_style="green"))

    def show_plan(self, release_name: str, report: AnnotationReport, skipped: List[str]):
        table = Table(title=f"Ownership plan for {release_name}", show_lines=True,
                      header_style="bold magenta")
        table.add_column("Namespace", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Resources", style="white")

        for namespace, ids in report.batches.items():
            table.add_row(namespace, str(len(ids)), "\n".join(ids))

        self.console.print(table)
        self.console.print(Panel(
            f"[bold white]Marker[/bold white]   {report.marker}\n"
            f"Objects:  {self._total(report.batches)}\n"
            f"Skipped:  [yellow]{len(skipped)}[/yellow]",
            border_style="dim"
        ))
        for reason in skipped:
            self.console.print(f"[yellow]⚠ {escape(reason)}[/yellow]")

    def show_error(self, message: str):
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    @staticmethod
    def _total(batches: Dict[str, List[str]]) -> int:
        return sum(len(ids) for ids in batches.values())
