"""Upload eligibility for finished sessions."""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from hsuploader.enums import BnetGameType, SceneMode


@dataclass(frozen=True)
class SessionClass:
    """Tagged classification of a session: a screen or a collector game type.

    Equality and hashing cover both the tag and the value, so a set of
    SessionClass values can mix screens and game types.
    """

    kind: str
    value: int

    SCENE = "scene"
    GAME_TYPE = "game_type"

    @classmethod
    def scene(cls, mode: Union[SceneMode, int]) -> "SessionClass":
        return cls(cls.SCENE, int(mode))

    @classmethod
    def game_type(cls, game_type: Union[BnetGameType, int]) -> "SessionClass":
        return cls(cls.GAME_TYPE, int(game_type))

    @classmethod
    def of(cls, value: Union["SessionClass", SceneMode, BnetGameType]) -> "SessionClass":
        """Normalize an allow-list entry."""
        if isinstance(value, SessionClass):
            return value
        if isinstance(value, SceneMode):
            return cls.scene(value)
        if isinstance(value, BnetGameType):
            return cls.game_type(value)
        raise TypeError(f"Cannot classify session by {value!r}")

    def __str__(self) -> str:
        enum_type = SceneMode if self.kind == self.SCENE else BnetGameType
        try:
            return f"{self.kind}:{enum_type(self.value).name}"
        except ValueError:
            return f"{self.kind}:{self.value}"


class UploadPolicy:
    """Decides whether a finished session is uploaded.

    A session is eligible when any of its classifications is allowed and,
    unless ``exclude_spectator`` is False, it was not watched as a spectator.
    """

    def __init__(
        self,
        allowed: Iterable[Union[SessionClass, SceneMode, BnetGameType]],
        exclude_spectator: bool = True,
    ) -> None:
        self.allowed = frozenset(SessionClass.of(value) for value in allowed)
        self.exclude_spectator = exclude_spectator

    def classify(
        self,
        mode: Optional[Union[SceneMode, int]],
        game_type: Optional[int] = None,
    ) -> list[SessionClass]:
        """Classifications of a session from its last menu screen and game type."""
        classes = []
        if mode is not None:
            classes.append(SessionClass.scene(mode))
        if game_type is not None:
            classes.append(SessionClass.game_type(game_type))
        return classes

    def is_eligible(
        self,
        mode: Optional[Union[SceneMode, int]],
        game_type: Optional[int] = None,
        spectator: bool = False,
    ) -> bool:
        if self.exclude_spectator and spectator:
            return False
        return any(cls in self.allowed for cls in self.classify(mode, game_type))
