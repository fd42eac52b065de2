# ui.py
from typing import Optional, Sequence

from textual.app import ComposeResult
from textual.message import Message
from textual.widgets import DataTable, Input, Label, Markdown, RichLog, Static

from models import DisplayItem


class SearchControls(Static):
    """Widget for the live search input."""
    class TextChanged(Message):
        def __init__(self, text: str) -> None:
            self.text = text
            super().__init__()

    class Submitted(Message):
        pass

    def compose(self) -> ComposeResult:
        yield Label("Search YouTube Music:")
        yield Input(placeholder="e.g., Daft Punk - Get Lucky", id="search-input")

    def on_input_changed(self, event: Input.Changed) -> None:
        event.stop()
        self.post_message(self.TextChanged(event.value.strip()))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.post_message(self.Submitted())


class DetailsPane(Static):
    """Widget to display details of the highlighted song."""
    def on_mount(self) -> None:
        self.update_details(None)

    def update_details(self, item: Optional[DisplayItem]) -> None:
        if item:
            tags = "\n".join(f"- {tag}" for tag in item.tags) or "- *No details*"
            origin = "Search result" if item.source == "search" else "From your history"
            content = f"## {item.title}\n\n*{origin}*\n\n{tags}\n\n**Link**: `{item.link}`"
        else:
            content = "## Details\n\n*Highlight a song to see its details.*"
        self.query_one(Markdown).update(content)

    def compose(self) -> ComposeResult:
        yield Markdown()


class ResultsDisplay(DataTable):
    """Widget for the merged search + history results."""
    class SongChosen(Message):
        def __init__(self, key: str) -> None:
            self.key = key
            super().__init__()

    class SongHighlighted(Message):
        def __init__(self, key: Optional[str]) -> None:
            self.key = key
            super().__init__()

    def on_mount(self) -> None:
        self.add_columns("", "Title", "Details")
        self.cursor_type = "row"

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        event.stop()
        if event.row_key.value:
            self.post_message(self.SongChosen(event.row_key.value))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        event.stop()
        self.post_message(self.SongHighlighted(event.row_key.value))

    def update_results(self, results: Sequence[DisplayItem]) -> None:
        self.clear()
        for r in results:
            marker = "🔎" if r.source == "search" else "🕘"
            self.add_row(marker, r.title, " • ".join(r.tags), key=r.video_id)


class LogPane(RichLog):
    """A dedicated widget for logging application events."""
    def add_message(self, message: str) -> None:
        self.write(message)
