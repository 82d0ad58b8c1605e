from __future__ import annotations

import json

import pytest

from cs2_presence import game_state
from cs2_presence.game_state import NormalizedState, Snapshot, SnapshotParseError, normalize, parse_snapshot


def test_empty_snapshot_normalizes_to_defaults():
    state = normalize(Snapshot())

    assert state.current_map == "Unknown"
    assert state.current_game_mode == "Unknown"
    assert state.current_activity == "menu"
    assert state.current_team == "Spectator"
    assert state.ct_score == 0
    assert state.t_score == 0
    assert state.has_player_state is False
    assert state.player_alive is True
    assert state.has_map_data is False


def test_parse_full_push():
    body = json.dumps(
        {
            "provider": {"name": "Counter-Strike: Global Offensive", "appid": 730, "steamid": "7656"},
            "map": {
                "name": "de_dust2",
                "mode": "competitive",
                "phase": "live",
                "round": 7,
                "team_ct": {"score": 4},
                "team_t": {"score": 3},
            },
            "round": {"phase": "live"},
            "player": {
                "steamid": "7656",
                "name": "s1mple",
                "activity": "playing",
                "team": "CT",
                "state": {"health": 87, "armor": 100, "money": 3150, "round_kills": 2},
            },
        }
    )

    snapshot = parse_snapshot(body)
    state = normalize(snapshot)

    assert snapshot.provider is not None and snapshot.provider.app_id == 730
    assert snapshot.player is not None and snapshot.player.state is not None
    assert snapshot.player.state.money == 3150
    assert state == NormalizedState(
        current_map="de_dust2",
        current_game_mode="competitive",
        current_activity="playing",
        current_team="CT",
        ct_score=4,
        t_score=3,
        has_player_state=True,
        player_alive=True,
        player_team="CT",
    )


def test_parse_is_lenient_about_case_comments_and_trailing_commas():
    body = """
    {
        // pushed by a relay that is not strict about JSON
        "MAP": {"Name": "de_mirage", "MODE": "scrimcomp5v5", "team_ct": {"score": "9"},},
        "Player": {"Activity": "playing", "TEAM": "T", /* inline */ "state": {"health": 0,},},
        "unknown_block": [1, 2, 3,],
    }
    """

    state = normalize(parse_snapshot(body))

    assert state.current_map == "de_mirage"
    assert state.current_game_mode == "scrimcomp5v5"
    assert state.ct_score == 9
    assert state.current_team == "T"
    assert state.has_player_state is True
    assert state.player_alive is False


def test_strings_containing_comment_markers_survive():
    body = '{"player": {"name": "http://clan.gg // best, ]", "activity": "menu"}}'

    snapshot = parse_snapshot(body)

    assert snapshot.player is not None
    assert snapshot.player.name == "http://clan.gg // best, ]"


def test_player_team_prefers_state_team():
    snapshot = parse_snapshot(
        '{"player": {"team": "Spectator", "activity": "playing", "state": {"health": 0, "team": "T"}}}'
    )

    state = normalize(snapshot)

    assert state.current_team == "Spectator"
    assert state.player_team == "T"
    assert state.player_alive is False


def test_empty_strings_fall_back_to_defaults():
    state = normalize(parse_snapshot('{"map": {"name": "", "mode": ""}, "player": {"activity": "", "team": ""}}'))

    assert state.current_map == "Unknown"
    assert state.current_game_mode == "Unknown"
    assert state.current_activity == "menu"
    assert state.current_team == "Spectator"


@pytest.mark.parametrize("body", ["{not json", "", "   ", "[1, 2]", '"text"', "{/* open"])
def test_malformed_bodies_raise(body):
    with pytest.raises(SnapshotParseError):
        parse_snapshot(body)


def test_deeply_nested_body_raises_parse_error():
    with pytest.raises(SnapshotParseError, match="nesting too deep"):
        parse_snapshot(b'{"map":' + b"[" * 100000)


def test_invalid_utf8_raises():
    with pytest.raises(SnapshotParseError):
        parse_snapshot(b"\xff\xfe{}")


def test_non_mapping_blocks_are_ignored():
    snapshot = parse_snapshot('{"map": "de_dust2", "player": null}')

    assert snapshot.map is None
    assert snapshot.player is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("scrimcomp5v5", "Premier"),
        ("SCRIMCOMP2V2", "Wingman"),
        ("gungameprogressive", "Arms Race"),
        ("survival", "Danger Zone"),
        ("hunting", "Hunting"),
        ("", "Unknown"),
        (None, "Unknown"),
    ],
)
def test_format_game_mode(raw, expected):
    assert game_state.format_game_mode(raw) == expected
