"""Session metadata snapshot taken when a game starts.

The state inspector reads live values out of the game client. Most of them
only become available a moment after the game is created, so every lookup is
re-polled until it returns a value or the attempt budget is used up.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, TypeVar

from hsuploader.enums import SceneMode, get_bnet_game_type

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Total inspector calls per value (first call + 5 retries)
DEFAULT_MAX_ATTEMPTS = 6
DEFAULT_RETRY_DELAY = 0.5


@dataclass(frozen=True)
class Card:
    id: str
    count: int = 1


@dataclass(frozen=True)
class Deck:
    id: int
    name: str = ""
    cards: tuple[Card, ...] = ()

    def card_ids(self) -> list[str]:
        """Card ids repeated by count, as the collector expects a deck list."""
        return [card.id for card in self.cards if card is not None for _ in range(card.count)]


@dataclass(frozen=True)
class ServerInfo:
    address: str
    port: int
    game_handle: int
    client_handle: int
    aurora_password: str = ""
    spectator_password: str = ""
    spectator_mode: bool = False
    resumable: bool = False
    version: str = ""


@dataclass(frozen=True)
class PlayerInfo:
    id: int
    name: str = ""
    card_back_id: int = 0


@dataclass(frozen=True)
class MatchInfo:
    local_player: PlayerInfo
    opposing_player: PlayerInfo
    ranked_season_id: Optional[int] = None
    mission_id: Optional[int] = None


class StateInspector(Protocol):
    """Reads live state out of the game client.

    Every method may return None while the value is not available yet.
    """

    def get_server_info(self) -> Optional[ServerInfo]: ...

    def get_format(self) -> Optional[int]: ...

    def get_game_type(self) -> Optional[int]: ...

    def get_match_info(self) -> Optional[MatchInfo]: ...

    def get_decks(self) -> Optional[list[Deck]]: ...

    def get_selected_deck_in_menu(self) -> Optional[int]: ...

    def get_current_scene_mode(self) -> Optional[int]: ...


@dataclass(frozen=True)
class PlayerMetadata:
    deck_id: Optional[int] = None
    deck_list: Optional[tuple[str, ...]] = None
    cardback: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.deck_id is not None:
            result["deck_id"] = self.deck_id
        if self.deck_list is not None:
            result["deck"] = list(self.deck_list)
        if self.cardback is not None:
            result["cardback"] = self.cardback
        return result


@dataclass(frozen=True)
class UploadMetadata:
    """Everything the collector needs to know about a session besides the log."""

    server_ip: Optional[str] = None
    server_port: Optional[str] = None
    server_version: Optional[str] = None
    client_handle: Optional[str] = None
    game_handle: Optional[str] = None
    aurora_password: Optional[str] = None
    spectator_password: Optional[str] = None
    spectator_mode: bool = False
    resumable: Optional[bool] = None
    format: Optional[int] = None
    game_type: Optional[int] = None
    friendly_player: Optional[int] = None
    ladder_season: Optional[int] = None
    scenario_id: Optional[int] = None
    player1: PlayerMetadata = field(default_factory=PlayerMetadata)
    player2: PlayerMetadata = field(default_factory=PlayerMetadata)
    hearthstone_build: Optional[int] = None
    match_start: str = ""
    test_data: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the upload request, leaving out unknown values."""
        result: dict[str, Any] = {}
        for key in (
            "server_ip", "server_port", "server_version", "client_handle",
            "game_handle", "aurora_password", "spectator_password", "resumable",
            "format", "game_type", "friendly_player", "ladder_season",
            "scenario_id", "hearthstone_build",
        ):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result["spectator_mode"] = self.spectator_mode
        result["match_start"] = self.match_start
        if self.test_data:
            result["test_data"] = True
        for key in ("player1", "player2"):
            player = getattr(self, key).to_dict()
            if player:
                result[key] = player
        return result


class MetadataGenerator:
    """Builds an UploadMetadata snapshot from the state inspector.

    Example:
        generator = MetadataGenerator(inspector, max_attempts=6)
        metadata = generator.generate(deck, build=12345)
    """

    def __init__(
        self,
        inspector: StateInspector,
        max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
        cancel: Optional[threading.Event] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the generator.

        Args:
            inspector: Live game state source.
            max_attempts: Inspector calls per value before the value is left out.
                None keeps polling until a value arrives.
            retry_delay: Seconds between calls.
            sleep: Sleep function, replaceable for testing. By default the
                delay is a wait on ``cancel``.
            cancel: Set to make polling give up early, e.g. on shutdown.
            log: Logger to use. Defaults to this module's logger.
        """
        self.inspector = inspector
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.cancel = cancel or threading.Event()
        self._log = log or logger

    def _wait(self, delay: float) -> bool:
        """Wait between attempts. Returns True if cancelled."""
        if self._sleep is not None:
            self._sleep(delay)
            return self.cancel.is_set()
        return self.cancel.wait(delay)

    def poll(self, getter: Callable[[], Optional[T]]) -> Optional[T]:
        """Call ``getter`` until it returns a value, attempts run out or ``cancel`` is set."""
        name = getattr(getter, "__name__", repr(getter))
        attempt = 1
        value = getter()
        while value is None:
            if self.max_attempts is not None and attempt >= self.max_attempts:
                self._log.warning(f"{name} still unavailable after {attempt} attempts")
                return None
            if attempt == 1:
                self._log.debug(f"{name} is None, retrying")
            if self._wait(self.retry_delay):
                self._log.debug(f"Gave up on {name}: cancelled")
                return None
            attempt += 1
            value = getter()
        if attempt > 1:
            self._log.debug(f"Found {name} after {attempt} attempts")
        return value

    def generate(
        self,
        deck: Optional[Deck],
        build: Optional[int],
        now: Optional[datetime] = None,
    ) -> UploadMetadata:
        """Snapshot the current game.

        Values the inspector never delivered are simply left out.

        Args:
            deck: Deck selected before the game, if known.
            build: Client build number, if known.
            now: Match start time. Defaults to the current time.
        """
        fields: dict[str, Any] = {}

        server_info = self.poll(self.inspector.get_server_info)
        if server_info is not None:
            fields.update(
                server_ip=server_info.address,
                server_port=str(server_info.port),
                server_version=server_info.version,
                client_handle=str(server_info.client_handle),
                game_handle=str(server_info.game_handle),
                aurora_password=server_info.aurora_password,
                spectator_password=server_info.spectator_password,
                spectator_mode=server_info.spectator_mode,
                resumable=server_info.resumable,
            )

        format_type = self.poll(self.inspector.get_format)
        if format_type is not None:
            fields["format"] = format_type
            game_type = self.poll(self.inspector.get_game_type)
            if game_type is not None:
                fields["game_type"] = int(get_bnet_game_type(game_type, format_type))

        friendly = {
            "deck_id": deck.id if deck else None,
            "deck_list": tuple(deck.card_ids()) if deck else None,
        }
        opposing: dict[str, Any] = {}

        match_info = self.poll(self.inspector.get_match_info)
        if match_info is not None:
            local_id = match_info.local_player.id
            fields.update(
                friendly_player=local_id,
                ladder_season=match_info.ranked_season_id,
                scenario_id=match_info.mission_id,
            )
            if match_info.local_player.card_back_id > 0:
                friendly["cardback"] = match_info.local_player.card_back_id
            if match_info.opposing_player.card_back_id > 0:
                opposing["cardback"] = match_info.opposing_player.card_back_id
            friendly_meta = PlayerMetadata(**friendly)
            opposing_meta = PlayerMetadata(**opposing)
            fields["player1"] = friendly_meta if local_id == 1 else opposing_meta
            fields["player2"] = friendly_meta if local_id == 2 else opposing_meta

        return UploadMetadata(
            hearthstone_build=build,
            match_start=(now or datetime.now().astimezone()).isoformat(),
            **fields,
        )


def scene_mode_or_none(value: Optional[int]) -> Optional[SceneMode]:
    """Convert a raw scene value from the inspector, ignoring unknown ones."""
    if value is None:
        return None
    try:
        return SceneMode(value)
    except ValueError:
        return None
