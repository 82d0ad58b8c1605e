"""Typed model of one Game State Integration push plus its normalized view.

The game pushes loosely shaped JSON: blocks come and go depending on which data
categories the integration descriptor enables, keys are occasionally cased
differently between builds, and some third-party relays emit trailing commas.
Parsing is therefore lenient: unknown keys are ignored, missing keys fall back
to defaults, key lookup is case-insensitive, and comments or trailing commas
are stripped before decoding.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

UNKNOWN = "Unknown"
MENU = "menu"
PLAYING = "playing"
SPECTATOR = "Spectator"

GAME_MODE_LABELS = {
    "casual": "Casual",
    "competitive": "Competitive",
    "deathmatch": "Deathmatch",
    "gungameprogressive": "Arms Race",
    "gungametrbomb": "Demolition",
    "training": "Training",
    "custom": "Custom",
    "cooperative": "Cooperative",
    "coopmission": "Guardian",
    "skirmish": "Skirmish",
    "survival": "Danger Zone",
    "scrimcomp2v2": "Wingman",
    "scrimcomp5v5": "Premier",
    "teamdeathmatch": "Team Deathmatch",
    "retakes": "Retakes",
    "ffa": "Free For All",
    "1v1": "1v1",
    "2v2": "2v2",
    "3v3": "3v3",
    "4v4": "4v4",
    "5v5": "5v5",
    "hostage": "Hostage Rescue",
    "demolition": "Demolition",
    "armsrace": "Arms Race",
    "dangerzone": "Danger Zone",
    "premier": "Premier",
    "wingman": "Wingman",
    "matchmaking": "Competitive",
    "unranked": "Unranked",
    "war": "War Games",
    "flying_scoutsman": "Flying Scoutsman",
    "retake": "Retakes",
    "guardian": "Guardian",
    "practice": "Practice",
    "offline": "Offline",
    "workshop": "Workshop",
}


class SnapshotParseError(ValueError):
    """Raised when a pushed body cannot be decoded as a snapshot."""


@dataclass(frozen=True)
class TeamInfo:
    score: int = 0
    consecutive_round_losses: int = 0
    timeouts_remaining: int = 0
    matches_won_this_series: int = 0


@dataclass(frozen=True)
class MapInfo:
    name: str = UNKNOWN
    mode: str = UNKNOWN
    phase: str = UNKNOWN
    round: int = 0
    team_ct: Optional[TeamInfo] = None
    team_t: Optional[TeamInfo] = None

    @property
    def ct_score(self) -> int:
        return self.team_ct.score if self.team_ct is not None else 0

    @property
    def t_score(self) -> int:
        return self.team_t.score if self.team_t is not None else 0


@dataclass(frozen=True)
class PlayerState:
    health: int = 100
    armor: int = 0
    helmet: bool = False
    flashed: int = 0
    smoked: int = 0
    burning: int = 0
    money: int = 0
    round_kills: int = 0
    round_killhs: int = 0
    equip_value: int = 0
    team: Optional[str] = None


@dataclass(frozen=True)
class PlayerInfo:
    steam_id: str = ""
    name: str = ""
    activity: str = MENU
    team: str = SPECTATOR
    state: Optional[PlayerState] = None


@dataclass(frozen=True)
class ProviderInfo:
    name: str = ""
    app_id: int = 0
    version: int = 0
    steam_id: str = ""
    timestamp: int = 0


@dataclass(frozen=True)
class RoundInfo:
    phase: str = ""
    win_team: str = ""
    bomb: str = ""


@dataclass(frozen=True)
class Snapshot:
    """One received push, immutable once parsed."""

    map: Optional[MapInfo] = None
    player: Optional[PlayerInfo] = None
    provider: Optional[ProviderInfo] = None
    round: Optional[RoundInfo] = None


@dataclass(frozen=True)
class NormalizedState:
    """Stable view over a snapshot with every field defaulted."""

    current_map: str = UNKNOWN
    current_game_mode: str = UNKNOWN
    current_activity: str = MENU
    current_team: str = SPECTATOR
    ct_score: int = 0
    t_score: int = 0
    has_player_state: bool = False
    player_alive: bool = True
    player_team: str = SPECTATOR

    @property
    def has_map_data(self) -> bool:
        return bool(self.current_map) and self.current_map != UNKNOWN


# Lenient decoding -----------------------------------------------------------


def _scan_outside_strings(text: str, handler) -> str:
    """Run ``handler`` on every character that is not inside a JSON string.

    The handler receives ``(text, index)`` and returns ``(emitted, next_index)``.
    """
    out = []
    index = 0
    length = len(text)
    in_string = False
    while index < length:
        char = text[index]
        if in_string:
            out.append(char)
            if char == "\\" and index + 1 < length:
                out.append(text[index + 1])
                index += 2
                continue
            if char == '"':
                in_string = False
            index += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            index += 1
            continue
        emitted, index = handler(text, index)
        out.append(emitted)
    return "".join(out)


def _comment_handler(text: str, index: int):
    if text.startswith("//", index):
        end = text.find("\n", index + 2)
        return "", len(text) if end == -1 else end
    if text.startswith("/*", index):
        end = text.find("*/", index + 2)
        if end == -1:
            raise SnapshotParseError("Unterminated comment in request body")
        return " ", end + 2
    return text[index], index + 1


def _trailing_comma_handler(text: str, index: int):
    if text[index] == ",":
        lookahead = index + 1
        while lookahead < len(text) and text[lookahead] in " \t\r\n":
            lookahead += 1
        if lookahead < len(text) and text[lookahead] in "}]":
            return "", index + 1
    return text[index], index + 1


def _decode_json(body: str) -> Any:
    cleaned = _scan_outside_strings(body, _comment_handler)
    cleaned = _scan_outside_strings(cleaned, _trailing_comma_handler)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise SnapshotParseError(f"Malformed JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})") from exc
    except RecursionError as exc:
        raise SnapshotParseError("Malformed JSON: nesting too deep") from exc


def _field(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    folded = key.casefold()
    for candidate, value in data.items():
        if isinstance(candidate, str) and candidate.casefold() == folded:
            return value
    return None


def _block(data: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = _field(data, key)
    return value if isinstance(value, Mapping) else None


def _coerce_int(raw: Any, default: int = 0) -> int:
    if raw is None:
        return default
    try:
        if isinstance(raw, (bool, int, float)):
            return int(raw)
        if isinstance(raw, str):
            return int(float(raw.strip()))
    except (ValueError, OverflowError):
        return default
    return default


def _coerce_str(raw: Any, default: str = "") -> str:
    if raw is None:
        return default
    text = str(raw)
    return text if text else default


def _parse_team(data: Optional[Mapping[str, Any]]) -> Optional[TeamInfo]:
    if data is None:
        return None
    return TeamInfo(
        score=_coerce_int(_field(data, "score")),
        consecutive_round_losses=_coerce_int(_field(data, "consecutive_round_losses")),
        timeouts_remaining=_coerce_int(_field(data, "timeouts_remaining")),
        matches_won_this_series=_coerce_int(_field(data, "matches_won_this_series")),
    )


def _parse_map(data: Optional[Mapping[str, Any]]) -> Optional[MapInfo]:
    if data is None:
        return None
    return MapInfo(
        name=_coerce_str(_field(data, "name"), UNKNOWN),
        mode=_coerce_str(_field(data, "mode"), UNKNOWN),
        phase=_coerce_str(_field(data, "phase"), UNKNOWN),
        round=_coerce_int(_field(data, "round")),
        team_ct=_parse_team(_block(data, "team_ct")),
        team_t=_parse_team(_block(data, "team_t")),
    )


def _parse_player_state(data: Optional[Mapping[str, Any]]) -> Optional[PlayerState]:
    if data is None:
        return None
    team = _field(data, "team")
    return PlayerState(
        health=_coerce_int(_field(data, "health"), 100),
        armor=_coerce_int(_field(data, "armor")),
        helmet=bool(_field(data, "helmet")),
        flashed=_coerce_int(_field(data, "flashed")),
        smoked=_coerce_int(_field(data, "smoked")),
        burning=_coerce_int(_field(data, "burning")),
        money=_coerce_int(_field(data, "money")),
        round_kills=_coerce_int(_field(data, "round_kills")),
        round_killhs=_coerce_int(_field(data, "round_killhs")),
        equip_value=_coerce_int(_field(data, "equip_value")),
        team=str(team) if team else None,
    )


def _parse_player(data: Optional[Mapping[str, Any]]) -> Optional[PlayerInfo]:
    if data is None:
        return None
    return PlayerInfo(
        steam_id=_coerce_str(_field(data, "steamid")),
        name=_coerce_str(_field(data, "name")),
        activity=_coerce_str(_field(data, "activity"), MENU),
        team=_coerce_str(_field(data, "team"), SPECTATOR),
        state=_parse_player_state(_block(data, "state")),
    )


def _parse_provider(data: Optional[Mapping[str, Any]]) -> Optional[ProviderInfo]:
    if data is None:
        return None
    return ProviderInfo(
        name=_coerce_str(_field(data, "name")),
        app_id=_coerce_int(_field(data, "appid")),
        version=_coerce_int(_field(data, "version")),
        steam_id=_coerce_str(_field(data, "steamid")),
        timestamp=_coerce_int(_field(data, "timestamp")),
    )


def _parse_round(data: Optional[Mapping[str, Any]]) -> Optional[RoundInfo]:
    if data is None:
        return None
    return RoundInfo(
        phase=_coerce_str(_field(data, "phase")),
        win_team=_coerce_str(_field(data, "win_team")),
        bomb=_coerce_str(_field(data, "bomb")),
    )


def snapshot_from_mapping(data: Mapping[str, Any]) -> Snapshot:
    return Snapshot(
        map=_parse_map(_block(data, "map")),
        player=_parse_player(_block(data, "player")),
        provider=_parse_provider(_block(data, "provider")),
        round=_parse_round(_block(data, "round")),
    )


def parse_snapshot(body: Union[str, bytes]) -> Snapshot:
    """Decode a pushed request body into a :class:`Snapshot`."""
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise SnapshotParseError(f"Request body is not valid UTF-8: {exc}") from exc
    if not body.strip():
        raise SnapshotParseError("Empty request body")
    data = _decode_json(body)
    if not isinstance(data, Mapping):
        raise SnapshotParseError("Game state must be a JSON object")
    return snapshot_from_mapping(data)


# Normalization --------------------------------------------------------------


def normalize(snapshot: Snapshot) -> NormalizedState:
    """Pure transform from a snapshot to its defaulted, display-ready view."""
    game_map = snapshot.map
    player = snapshot.player
    state = player.state if player is not None else None

    current_map = game_map.name if game_map is not None and game_map.name else UNKNOWN
    current_mode = game_map.mode if game_map is not None and game_map.mode else UNKNOWN
    activity = player.activity if player is not None and player.activity else MENU
    team = player.team if player is not None and player.team else SPECTATOR
    player_team = state.team if state is not None and state.team else team

    return NormalizedState(
        current_map=current_map,
        current_game_mode=current_mode,
        current_activity=activity,
        current_team=team,
        ct_score=game_map.ct_score if game_map is not None else 0,
        t_score=game_map.t_score if game_map is not None else 0,
        has_player_state=state is not None,
        player_alive=not (state is not None and state.health == 0),
        player_team=player_team,
    )


def format_game_mode(mode: Optional[str]) -> str:
    """Map a raw mode identifier to its display label."""
    if not mode:
        return UNKNOWN
    label = GAME_MODE_LABELS.get(mode.lower())
    if label is not None:
        return label
    return mode[0].upper() + mode[1:]
