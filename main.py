# main.py
import asyncio
import logging
from typing import Callable, Optional, Tuple

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.logging import TextualHandler
from textual.reactive import reactive
from textual.widgets import Footer, Header, Input

from config import Config, SettingsManager
from models import AppState, DisplayItem, QueueInsertPosition
from search import DebounceGate, SearchCoordinator
from services import BackendHandle, HistoryStore, PlayerApiClient, QueueService, YTMusicSearchService
from ui import DetailsPane, LogPane, ResultsDisplay, SearchControls


class YTMusicQueueApp(App):
    BINDINGS = [
        ("ctrl+e", "insert_at_end", "Queue at end"),
        ("ctrl+l", "cycle_history", "History size"),
        ("ctrl+r", "refresh", "Refresh"),
        ("ctrl+b", "previous_song", "Previous"),
        ("ctrl+t", "toggle_play", "Play/Pause"),
        ("ctrl+n", "now_playing", "Now playing"),
        ("ctrl+q", "quit", "Quit"),
    ]
    CSS = """
    #app-grid {
        height: 1fr;
    }

    #left-pane {
        width: 2fr;
    }

    #right-pane {
        width: 1fr;
        border-left: solid $primary;
        padding: 0 1;
    }

    SearchControls {
        height: auto;
        padding: 0 1;
    }

    #results-table {
        height: 1fr;
    }

    #log {
        height: 8;
        border-top: solid $primary;
    }
    """

    app_state = reactive(AppState(), always_update=True)

    def __init__(self, coordinator: SearchCoordinator, queue_service: QueueService,
                 settings: SettingsManager, config: Config):
        super().__init__()
        self.coordinator = coordinator
        self.coordinator.on_results_changed = self.show_results
        self.queue_service = queue_service
        self.settings = settings
        self.config = config
        self.gate = DebounceGate(self.coordinator.on_settled, delay=config.DEBOUNCE_SECONDS)

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="main-container"):
            with Horizontal(id="app-grid"):
                with Vertical(id="left-pane"):
                    yield SearchControls()
                    yield ResultsDisplay(id="results-table")
                with Vertical(id="right-pane"):
                    yield DetailsPane(id="details-pane")
            yield LogPane(id="log", wrap=True, highlight=True, markup=True)
        yield Footer()

    def on_mount(self) -> None:
        log = self.query_one(LogPane)
        self.query_one(Input).focus()
        log.add_message(f"🎧 Player server: [b]{self.settings.server_address}[/b]")
        log.add_message(f"🕘 History size: [b]{self.settings.history_limit.value}[/b]")
        self.coordinator.on_settled("")

    async def on_unmount(self) -> None:
        self.gate.cancel()
        self.coordinator.cancel()
        await self.coordinator.wait()

    def watch_app_state(self, old_state: AppState, new_state: AppState) -> None:
        if old_state.results != new_state.results:
            self.query_one(ResultsDisplay).update_results(new_state.results)
        self.query_one(DetailsPane).update_details(new_state.selected_result)

    def show_results(self, count: int) -> None:
        results = list(self.coordinator.store.snapshot())
        self.app_state = AppState(results=results, selected_result=results[0] if results else None)
        session = self.coordinator.current_session
        if session is not None and session.search_failed:
            self.query_one(LogPane).add_message(
                f"[yellow]⚠️ Search for '{session.query.text}' failed, showing history only.[/yellow]")
        elif session is not None and session.query.text and count == 0:
            self.query_one(LogPane).add_message(f"🤷 No music found for '{session.query.text}'.")

    def on_search_controls_text_changed(self, message: SearchControls.TextChanged) -> None:
        self.gate.update(message.text)

    def on_search_controls_submitted(self, message: SearchControls.Submitted) -> None:
        self.gate.flush()

    def on_results_display_song_chosen(self, message: ResultsDisplay.SongChosen) -> None:
        selected = self._find(message.key)
        if selected:
            self.run_worker(self.perform_insert(selected, QueueInsertPosition.INSERT_AFTER_CURRENT_VIDEO),
                            group="queue_worker")

    def on_results_display_song_highlighted(self, message: ResultsDisplay.SongHighlighted) -> None:
        self.app_state = AppState(results=self.app_state.results, selected_result=self._find(message.key))

    def _find(self, key) -> Optional[DisplayItem]:
        return next((r for r in self.app_state.results if r.video_id == key), None)

    def action_insert_at_end(self) -> None:
        selected = self.app_state.selected_result
        if selected:
            self.run_worker(self.perform_insert(selected, QueueInsertPosition.INSERT_AT_END), group="queue_worker")
        else:
            self.query_one(LogPane).add_message("[yellow]⚠️ No song selected.[/yellow]")

    def action_cycle_history(self) -> None:
        limit = self.settings.history_limit.next()
        self.settings.set_history_limit(limit)
        self.query_one(LogPane).add_message(f"🕘 History size set to [b]{limit.value}[/b].")
        self.coordinator.refresh()

    def action_refresh(self) -> None:
        self.coordinator.refresh()

    def action_previous_song(self) -> None:
        self.run_worker(self.perform_control(self.queue_service.previous), group="player_worker")

    def action_toggle_play(self) -> None:
        self.run_worker(self.perform_control(self.queue_service.toggle_play), group="player_worker")

    def action_now_playing(self) -> None:
        self.run_worker(self.perform_control(self.queue_service.now_playing), group="player_worker")

    async def perform_control(self, command: Callable[[], Tuple[bool, str]]) -> None:
        success, message = await asyncio.to_thread(command)
        if success:
            self.query_one(LogPane).add_message(f"🎵 {message}")
        else:
            self.query_one(LogPane).add_message(f"[red]❌ {message}[/red]")

    async def perform_insert(self, item: DisplayItem, position: QueueInsertPosition) -> None:
        log = self.query_one(LogPane)
        log.add_message(f"📥 Queueing '[b]{item.title}[/b]'...")
        success, message = await asyncio.to_thread(self.queue_service.insert, item.to_result(), position)
        if success:
            log.add_message(f"[green]✅ {message}[/green]")
            self.coordinator.refresh()
        else:
            log.add_message(f"[red]❌ {message}[/red]")


def build_app(config: Config) -> YTMusicQueueApp:
    history_store = HistoryStore(config.HISTORY_FILENAME)
    settings = SettingsManager(config.SETTINGS_FILENAME, history_store, config.DEFAULT_SERVER_ADDRESS)
    backends = BackendHandle(lambda address: PlayerApiClient(address, config.APP_NAME, config.REQUEST_TIMEOUT))
    searcher = YTMusicSearchService() if config.SEARCH_PROVIDER == "ytmusicapi" else None
    coordinator = SearchCoordinator(backends, history_store, settings, searcher=searcher,
                                    show_live_without_history=config.SHOW_LIVE_RESULT_WITHOUT_HISTORY)
    queue_service = QueueService(backends, settings, history_store, config.ADVANCE_DELAY_SECONDS)
    return YTMusicQueueApp(coordinator, queue_service, settings, config)


def run() -> None:
    app_config = Config()
    logging.basicConfig(level=app_config.LOG_LEVEL, handlers=[TextualHandler()])
    app = build_app(app_config)

    try:
        app.run()
    finally:
        app.queue_service.backends.close()


if __name__ == "__main__":
    run()
