"""Background pollers for the game process and the deck selection menu."""

import logging
import threading
from typing import Callable, Optional

from hsuploader.enums import SceneMode
from hsuploader.events import Signal
from hsuploader.metadata import Deck, StateInspector, scene_mode_or_none
from hsuploader.util import is_hearthstone_running

logger = logging.getLogger(__name__)

PROCESS_POLL_INTERVAL = 1.0
DECK_POLL_INTERVAL = 0.5

# Screens where a deck can be picked before a game
DECK_SELECTION_MODES = frozenset({
    SceneMode.ADVENTURE,
    SceneMode.FRIENDLY,
    SceneMode.TAVERN_BRAWL,
    SceneMode.TOURNAMENT,
})


class _Poller:
    """Runs ``_poll`` every ``interval`` seconds on a daemon thread.

    ``run()`` while already running is a no-op, including when a previous
    ``stop()`` has not been noticed by the loop yet: the loop simply carries on.
    """

    thread_name = "poller"

    def __init__(self, interval: float, log: Optional[logging.Logger] = None) -> None:
        self.interval = interval
        self._log = log or logger
        self._watch = False
        self._wakeup = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._watch

    def run(self) -> None:
        with self._lock:
            self._watch = True
            if self._thread is not None and self._thread.is_alive():
                return
            self._on_run()
            self._wakeup.clear()
            self._thread = threading.Thread(target=self._loop, name=self.thread_name, daemon=True)
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            self._watch = False
            self._wakeup.set()
            self._on_stop()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the polling thread to exit after stop()."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _loop(self) -> None:
        self._log.debug(f"{self.thread_name}: watching")
        while self._watch:
            try:
                self._poll()
            except Exception as e:
                self._log.warning(f"{self.thread_name}: poll failed: {e}")
            self._wakeup.wait(self.interval)
            self._wakeup.clear()
            if not self._watch:
                break
        self._log.debug(f"{self.thread_name}: stopped watching")

    def _on_run(self) -> None:
        pass

    def _on_stop(self) -> None:
        pass

    def _poll(self) -> None:
        raise NotImplementedError


class ProcessWatcher(_Poller):
    """Edge-triggered notification of the game process starting and stopping.

    Signals:
        started(): the process is running and was not on the previous poll.
        stopped(): the process is gone and was running on the previous poll.
    """

    thread_name = "process-watcher"

    def __init__(
        self,
        is_running: Callable[[], bool] = is_hearthstone_running,
        interval: float = PROCESS_POLL_INTERVAL,
        log: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(interval, log)
        self._is_running = is_running
        self.process_running = False
        self.started = Signal("process_started", self._log)
        self.stopped = Signal("process_stopped", self._log)

    def _on_stop(self) -> None:
        self.process_running = False

    def _poll(self) -> None:
        running = bool(self._is_running())
        if running == self.process_running:
            return
        self.process_running = running
        if running:
            self._log.info("Hearthstone process started")
            self.started.emit()
        else:
            self._log.info("Hearthstone process stopped")
            self.stopped.emit()


class DeckWatcher(_Poller):
    """Tracks the deck selected in the menus and the last known screen.

    The deck list is cached while a deck selection screen is open and dropped
    as soon as the player leaves those screens, so a stale deck is never
    attributed to a game started from elsewhere.
    """

    thread_name = "deck-watcher"

    def __init__(
        self,
        inspector: StateInspector,
        is_running: Callable[[], bool] = is_hearthstone_running,
        interval: float = DECK_POLL_INTERVAL,
        modes: frozenset[SceneMode] = DECK_SELECTION_MODES,
        log: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(interval, log)
        self.inspector = inspector
        self._is_running = is_running
        self.modes = modes
        self.decks: Optional[list[Deck]] = None
        self.selected_deck_id: int = 0
        self.last_known_mode: Optional[SceneMode] = None

    @property
    def selected_deck(self) -> Optional[Deck]:
        if not self.decks:
            return None
        return next((d for d in self.decks if d.id == self.selected_deck_id), None)

    def _on_run(self) -> None:
        self.selected_deck_id = 0

    def _on_stop(self) -> None:
        self.decks = None
        self.selected_deck_id = 0

    def _poll(self) -> None:
        if not self._is_running():
            return

        scene = scene_mode_or_none(self.inspector.get_current_scene_mode())
        if scene is not None and scene != SceneMode.GAMEPLAY:
            self.last_known_mode = scene
            if scene not in self.modes:
                self.decks = None
                return

        if self.decks is None:
            self.decks = self.inspector.get_decks()

        deck_id = self.inspector.get_selected_deck_in_menu() or 0
        if deck_id > 0:
            if deck_id != self.selected_deck_id:
                self._log.debug(f"Selected deck: {deck_id}")
            self.selected_deck_id = deck_id
