from __future__ import annotations

from conftest import make_cyclone, utc
from nhc_tracker.tracking import (
    build_cyclone_map,
    diff,
    extract_commanded_ids,
    find_track_command,
    next_tracked_ids,
)


def test_disjoint_snapshots_yield_nothing() -> None:
    previous = [make_cyclone("AL012023"), make_cyclone("AL022023")]
    current = [make_cyclone("AL032023"), make_cyclone("AL042023")]

    result = diff(["AL012023", "AL022023"], previous, current)

    assert result.updated == []
    assert result.still_trackable == []


def test_unchanged_token_is_trackable_but_not_updated() -> None:
    previous = [make_cyclone("AL012023", "g1")]
    current = [make_cyclone("AL012023", "g1", wind="70 mph")]

    result = diff(["AL012023"], previous, current)

    assert result.updated == []
    assert result.still_trackable == ["AL012023"]


def test_changed_token_is_updated() -> None:
    previous = [make_cyclone("AL012023", "g1")]
    current = [make_cyclone("AL012023", "g2")]

    result = diff(["AL012023"], previous, current)

    assert [c.update_guid for c in result.updated] == ["g2"]


def test_tracked_id_only_in_previous_is_evicted() -> None:
    previous = [make_cyclone("AL012023"), make_cyclone("AL022023")]
    current = [make_cyclone("AL022023")]

    result = diff(["AL012023", "AL022023"], previous, current)

    assert "AL012023" not in result.still_trackable
    assert all(c.atcf != "AL012023" for c in result.updated)


def test_new_cyclone_without_previous_record_is_updated() -> None:
    previous = [make_cyclone("AL012023", "g1")]
    current = [make_cyclone("AL012023", "g1"), make_cyclone("AL022023", "g2")]

    result = diff(["AL012023", "AL022023"], previous, current)

    assert [c.atcf for c in result.updated] == ["AL022023"]
    assert result.still_trackable == ["AL012023", "AL022023"]


def test_results_follow_tracked_order_not_feed_order() -> None:
    current = [make_cyclone("AL012023", "a"), make_cyclone("AL022023", "b")]

    result = diff(["AL022023", "AL012023"], [], current)

    assert [c.atcf for c in result.updated] == ["AL022023", "AL012023"]
    assert result.still_trackable == ["AL022023", "AL012023"]


def test_duplicate_ids_do_not_crash_and_latest_wins() -> None:
    current = [make_cyclone("AL012023", "old"), make_cyclone("AL012023", "new")]

    assert build_cyclone_map(current)["AL012023"].update_guid == "new"
    result = diff(["AL012023"], [make_cyclone("AL012023", "new")], current)
    assert result.updated == []


def test_next_tracked_ids_keeps_survivors_then_adds_commanded() -> None:
    current = [make_cyclone("AL012023"), make_cyclone("AL022023"), make_cyclone("AL032023")]

    tracked = next_tracked_ids(
        ["AL032023", "AL092023"],
        ["AL012023", "AL032023", "AL772023"],
        current,
    )

    assert tracked == ["AL032023", "AL012023"]


def test_next_tracked_ids_with_empty_snapshot_evicts_everything() -> None:
    assert next_tracked_ids(["AL012023"], ["AL012023"], []) == []


def test_find_track_command_picks_newest_human_message() -> None:
    now = utc(2023, 9, 10, 12)
    messages = [
        {"content": "!nhctrack AL012023", "timestamp": "2023-09-09T10:00:00.000000+00:00", "author": {"id": "1"}},
        {"content": "!nhctrack AL022023", "timestamp": "2023-09-10T09:00:00.000000+00:00", "author": {"id": "1"}},
        {"content": "hello", "timestamp": "2023-09-10T11:00:00.000000+00:00", "author": {"id": "1"}},
        {
            "content": "Track cyclones by PMing me \"!nhctrack <ids>\"",
            "timestamp": "2023-09-10T11:30:00.000000+00:00",
            "author": {"id": "2", "bot": True},
        },
    ]

    assert find_track_command(messages, now) == "!nhctrack AL022023"


def test_find_track_command_ignores_messages_older_than_thirty_days() -> None:
    now = utc(2023, 9, 10, 12)
    messages = [
        {"content": "!nhctrack AL012023", "timestamp": "2023-08-01T10:00:00Z", "author": {"id": "1"}},
    ]

    assert find_track_command(messages, now) is None


def test_extract_commanded_ids_only_returns_active_cyclones() -> None:
    current = [make_cyclone("AL012023"), make_cyclone("AL022023")]

    ids = extract_commanded_ids("!nhctrack AL022023  al012023 AL992023 AL012023", current)

    assert ids == ["AL022023", "AL012023"]
