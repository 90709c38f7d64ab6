"""
Intimacy level table and level-up detection.
"""
import pytest

from app.services.intimacy import INTIMACY_LEVELS, check_level_up, level_for


@pytest.mark.parametrize(
    "count,expected_level",
    [(0, 1), (9, 1), (10, 2), (19, 2), (20, 3), (50, 4), (99, 4), (100, 5), (200, 6), (499, 6), (500, 7), (10_000, 7)],
)
def test_level_for_picks_highest_threshold_not_exceeding_count(count, expected_level):
    assert level_for(count).level == expected_level


def test_level_for_is_monotonic_in_message_count():
    levels = [level_for(count).level for count in range(0, 700)]
    assert levels == sorted(levels)


def test_level_info_progress_towards_next_level():
    info = level_for(15)

    assert info.name == "Acquaintances"
    assert info.min_messages == 10
    assert info.next_level_at == 20
    assert info.messages_to_next_level == 5
    assert info.progress_percent == 50
    assert info.is_max_level is False


def test_max_level_has_no_next_threshold():
    info = level_for(INTIMACY_LEVELS[-1].min_messages + 3)

    assert info.is_max_level is True
    assert info.next_level_at is None
    assert info.messages_to_next_level is None
    assert info.progress_percent == 100


def test_negative_count_is_rejected():
    with pytest.raises(ValueError):
        level_for(-1)


def test_check_level_up_crossing_threshold():
    check = check_level_up(9, 10)

    assert check.leveled_up is True
    assert check.previous_level == 1
    assert check.new_level == 2
    assert check.new_level_info.to_dict()["name"] == "Acquaintances"


def test_check_level_up_within_level():
    check = check_level_up(10, 11)

    assert check.leveled_up is False
    assert check.previous_level == check.new_level == 2


def test_check_level_up_multi_point_step_over_threshold():
    # An image adds two points and may jump straight over a boundary
    check = check_level_up(19, 21)

    assert check.leveled_up is True
    assert check.new_level == 3
