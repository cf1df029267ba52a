from typing import Optional

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED

from strmthumb.ui.state import UIState

LEVEL_STYLES = {
    "info": ("•", "cyan"),
    "success": ("✓", "green"),
    "error": ("✗", "red"),
}


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class Dashboard:
    """Live terminal view of one batch, rendered from UIState."""

    def __init__(self, state: UIState, console: Optional[Console] = None, refresh_per_second: int = 4):
        self.state = state
        self.console = console or Console()
        self.refresh_per_second = refresh_per_second
        self._live: Optional[Live] = None

    def _render_progress(self, progress) -> RenderableType:
        total = max(progress.total, 1)
        bar = ProgressBar(total=total, completed=progress.processed, width=None)
        header = Text.assemble(
            ("Done ", "bold"),
            (f"{progress.processed}/{progress.total}", "bold white"),
            "  ",
            (f"✓ {progress.succeeded - progress.skipped}", "green"),
            "  ",
            (f"↷ {progress.skipped}", "yellow"),
            "  ",
            (f"✗ {progress.failed}", "red"),
            "  ",
            (format_duration(self.state.elapsed_seconds), "dim"),
        )
        return Group(header, bar)

    def _render_activity(self, messages) -> RenderableType:
        table = Table.grid(padding=(0, 1))
        table.add_column(no_wrap=True)
        table.add_column(overflow="ellipsis", no_wrap=True)
        if not messages:
            table.add_row(Text("…", style="dim"), Text("waiting", style="dim"))
        for _, level, message in messages:
            icon, style = LEVEL_STYLES.get(level, ("•", "white"))
            table.add_row(Text(icon, style=style), Text(message))
        return table

    def create_display(self) -> RenderableType:
        progress, messages, failed, finished = self.state.snapshot()
        title = f"{self.state.ui_title} - {'finished' if finished else 'running'}"
        parts = [self._render_progress(progress)]
        if self.state.config_lines:
            parts.insert(0, Text("  ".join(self.state.config_lines), style="dim"))
        parts.append(Panel(self._render_activity(messages), title="Activity", box=ROUNDED))
        return Panel(Group(*parts), title=title, box=ROUNDED)

    def render_summary(self) -> RenderableType:
        progress, _, failed, _ = self.state.snapshot()
        table = Table(box=ROUNDED, show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_row("Total", str(progress.total))
        table.add_row("Succeeded", str(progress.succeeded))
        table.add_row("Skipped", str(progress.skipped))
        table.add_row("Failed", str(progress.failed))
        table.add_row("Elapsed", format_duration(self.state.elapsed_seconds))
        if not failed:
            return table
        failed_list = Text("\n".join(failed), style="red")
        return Group(table, Panel(failed_list, title="Failed files", box=ROUNDED))

    def start(self):
        self._live = Live(
            get_renderable=self.create_display,
            console=self.console,
            refresh_per_second=self.refresh_per_second,
        )
        self._live.start()
        return self

    def stop(self):
        if self._live:
            self._live.refresh()
            self._live.stop()
            self._live = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
