"""Hearthstone client enums used for session classification.

Values mirror the game client's own enums so they can be compared against
whatever the state inspector reports.
"""

from enum import IntEnum


class SceneMode(IntEnum):
    """Game screens."""
    INVALID = 0
    STARTUP = 1
    LOGIN = 2
    HUB = 3
    GAMEPLAY = 4
    COLLECTIONMANAGER = 5
    PACKOPENING = 6
    TOURNAMENT = 7  # Constructed
    FRIENDLY = 8
    FATAL_ERROR = 9
    DRAFT = 10  # Arena
    CREDITS = 11
    RESET = 12
    ADVENTURE = 13
    TAVERN_BRAWL = 14


class GameType(IntEnum):
    GT_UNKNOWN = 0
    GT_VS_AI = 1
    GT_VS_FRIEND = 2
    GT_TUTORIAL = 4
    GT_ARENA = 5
    GT_TEST = 6
    GT_RANKED = 7
    GT_CASUAL = 8
    GT_TAVERNBRAWL = 16
    GT_TB_1P_VS_AI = 17
    GT_TB_2P_COOP = 18
    GT_LAST = 19


class FormatType(IntEnum):
    FT_UNKNOWN = 0
    FT_WILD = 1
    FT_STANDARD = 2


class BnetGameType(IntEnum):
    """Game type as understood by the replay collector."""
    BGT_UNKNOWN = 0
    BGT_FRIENDS = 1
    BGT_RANKED_STANDARD = 2
    BGT_ARENA = 3
    BGT_VS_AI = 4
    BGT_TUTORIAL = 5
    BGT_ASYNC = 6
    BGT_CASUAL_STANDARD = 10
    BGT_TEST1 = 11
    BGT_TEST2 = 12
    BGT_TEST3 = 13
    BGT_TAVERNBRAWL_PVP = 16
    BGT_TAVERNBRAWL_1P_VERSUS_AI = 17
    BGT_TAVERNBRAWL_2P_COOP = 18
    BGT_RANKED_WILD = 30
    BGT_CASUAL_WILD = 31
    BGT_LAST = 32


_SIMPLE_GAME_TYPES = {
    GameType.GT_UNKNOWN: BnetGameType.BGT_UNKNOWN,
    GameType.GT_VS_AI: BnetGameType.BGT_VS_AI,
    GameType.GT_VS_FRIEND: BnetGameType.BGT_FRIENDS,
    GameType.GT_TUTORIAL: BnetGameType.BGT_TUTORIAL,
    GameType.GT_ARENA: BnetGameType.BGT_ARENA,
    GameType.GT_TEST: BnetGameType.BGT_TEST1,
    GameType.GT_TAVERNBRAWL: BnetGameType.BGT_TAVERNBRAWL_PVP,
    GameType.GT_TB_1P_VS_AI: BnetGameType.BGT_TAVERNBRAWL_1P_VERSUS_AI,
    GameType.GT_TB_2P_COOP: BnetGameType.BGT_TAVERNBRAWL_2P_COOP,
    GameType.GT_LAST: BnetGameType.BGT_LAST,
}


def get_bnet_game_type(game_type: int, format_type: int) -> BnetGameType:
    """Map the client's game type and format to the collector's game type.

    Ranked and casual games are split into standard/wild by format. Unknown
    raw values map to ``BGT_UNKNOWN``.

    Args:
        game_type: Raw ``GameType`` value from the inspector.
        format_type: Raw ``FormatType`` value from the inspector.

    Returns:
        The matching BnetGameType.
    """
    try:
        gt = GameType(game_type)
    except ValueError:
        return BnetGameType.BGT_UNKNOWN

    standard = format_type == FormatType.FT_STANDARD
    if gt == GameType.GT_RANKED:
        return BnetGameType.BGT_RANKED_STANDARD if standard else BnetGameType.BGT_RANKED_WILD
    if gt == GameType.GT_CASUAL:
        return BnetGameType.BGT_CASUAL_STANDARD if standard else BnetGameType.BGT_CASUAL_WILD
    return _SIMPLE_GAME_TYPES.get(gt, BnetGameType.BGT_UNKNOWN)
