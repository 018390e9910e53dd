import random
from datetime import timedelta

import pytest

from logreplay.errors import EmptyOrInvalidInput
from logreplay.timeline import Timeline, build_timeline, parse_shift

from conftest import make_entry


def test_offsets_from_earliest_entry():
    entries = [make_entry(5), make_entry(0), make_entry(2)]

    timeline = build_timeline(entries)

    assert timeline.offsets == [timedelta(0), timedelta(seconds=2), timedelta(seconds=5)]
    assert [item.index for item in timeline] == [1, 2, 0]
    assert timeline.duration == timedelta(seconds=5)


def test_offsets_are_monotonic():
    rng = random.Random(7)
    entries = [make_entry(rng.uniform(0, 600)) for _ in range(50)]

    offsets = build_timeline(entries).offsets

    assert all(o >= timedelta(0) for o in offsets)
    assert offsets == sorted(offsets)


def test_ties_keep_log_order():
    entries = [
        make_entry(3, url="http://prod.example.com/first"),
        make_entry(1),
        make_entry(3, url="http://prod.example.com/second"),
        make_entry(3, url="http://prod.example.com/third"),
    ]

    timeline = build_timeline(entries)

    assert [item.entry.url for item in timeline][1:] == [
        "http://prod.example.com/first",
        "http://prod.example.com/second",
        "http://prod.example.com/third",
    ]


def test_shift_translates_without_scaling():
    entries = [make_entry(0), make_entry(2), make_entry(5)]
    shift = timedelta(minutes=1)

    shifted = build_timeline(entries, shift)

    assert shifted.offsets == [timedelta(seconds=60), timedelta(seconds=62), timedelta(seconds=65)]
    assert shifted.duration == build_timeline(entries).duration


def test_shift_is_invertible():
    entries = [make_entry(s) for s in (0.25, 9, 1.5, 1.5, 30)]
    shift = timedelta(hours=3, microseconds=17)

    plain = build_timeline(entries)

    assert build_timeline(entries, shift).shifted(-shift) == plain
    assert plain.shifted(shift).shifted(-shift) == plain


def test_empty_and_single():
    assert build_timeline([]) == Timeline()
    assert len(build_timeline([], timedelta(seconds=5))) == 0

    single = build_timeline([make_entry(42)], timedelta(seconds=3))
    assert single.offsets == [timedelta(seconds=3)]


def test_rejects_non_entries():
    with pytest.raises(EmptyOrInvalidInput):
        build_timeline([make_entry(0), {"url": "http://prod.example.com/"}])


def test_groups_by_offset():
    timeline = build_timeline([make_entry(0), make_entry(1), make_entry(1), make_entry(4)])

    groups = [(offset.total_seconds(), [pos for pos, _ in run]) for offset, run in timeline.groups()]

    assert groups == [(0.0, [0]), (1.0, [1, 2]), (4.0, [3])]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2s", timedelta(seconds=2)),
        ("5s", timedelta(seconds=5)),
        ("2m", timedelta(minutes=2)),
        ("2h", timedelta(hours=2)),
        ("2d", timedelta(days=2)),
        ("2w", timedelta(weeks=2)),
        ("-30s", timedelta(seconds=-30)),
        ("0s", timedelta(0)),
    ],
)
def test_parse_shift(text, expected):
    assert parse_shift(text) == expected


@pytest.mark.parametrize("text", ["", "2", "2t", "s", "1.5h"])
def test_parse_shift_invalid(text):
    with pytest.raises(ValueError):
        parse_shift(text)
