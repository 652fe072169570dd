"""Single-keypress decision screen for the open-pack workflow.

Start a pack editing session with ``fencryption open notes.pack``; while the
working directory is open this small Textual app waits for one key.
"""

from __future__ import annotations

from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.widgets import Static

from fencryption.core.reseal import UPDATE_KEY, InteractiveReseal


class DecisionApp(App[str]):
    """Shows where the pack was opened and exits with the next key pressed."""

    TITLE = "fencryption"

    CSS = """
    Screen { align: center middle; }
    .dialog { width: 75%; height: auto; padding: 1; border: heavy $surface; background: $boost; }
    .title { padding: 0 1 1 1; text-style: bold; }
    .hint { padding: 1 1 0 1; color: $text-muted; }
    """

    def __init__(self, pack_path: Path, working_dir: Path):
        super().__init__()
        self.pack_path = Path(pack_path)
        self.working_dir = Path(working_dir)

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static(f"Opened pack {self.pack_path.name}", classes="title")
            yield Static(f"Edit the files in: {self.working_dir}")
            yield Static(
                f'Press "{UPDATE_KEY}" to update the pack and any other key to discard changes',
                classes="hint",
            )

    def on_key(self, event) -> None:
        event.stop()
        self.exit(event.key)


def await_keypress(session: InteractiveReseal) -> str:
    """Block until the user presses a key; return it as the decision token."""
    return DecisionApp(session.pack_path, session.working_dir).run() or ""
