"""Tests for parsing load values out of recognized screenshot text."""

from datetime import datetime
from typing import List

import pytest

from training_load.models.ocr import BoundingBox, TextFragment
from training_load.services.ocr_parser import (
    extract_date,
    extract_number,
    match_confidence,
    parse_fragments,
    parse_spatial_layout,
    parse_table_format,
    parse_text,
)


def fragment(text: str, center_x: float, center_y: float) -> TextFragment:
    return TextFragment(
        text=text,
        bbox=BoundingBox(x=center_x - 0.03, y=center_y - 0.02, width=0.06, height=0.04),
    )


def summary_labels() -> List[TextFragment]:
    return [
        fragment("Fitness", 0.1, 0.4),
        fragment("Fatigue", 0.4, 0.4),
        fragment("Form", 0.7, 0.4),
    ]


class TestSpatialLayout:
    """Tests for position-based attribution."""

    def test_values_above_labels(self):
        fragments = summary_labels() + [
            fragment("44", 0.1, 0.5),
            fragment("57", 0.4, 0.5),
            fragment("-13", 0.7, 0.5),
        ]

        reading = parse_spatial_layout(fragments)

        assert reading is not None
        assert (reading.ctl, reading.atl, reading.tsb) == (44.0, 57.0, -13.0)
        assert reading.confidence == 0.95
        assert reading.is_valid

    def test_arrows_and_decorations_ignored(self):
        fragments = summary_labels() + [
            fragment("↑44", 0.1, 0.5),
            fragment("57 ↓", 0.4, 0.5),
            fragment("•5", 0.7, 0.5),
        ]

        reading = parse_spatial_layout(fragments)
        assert (reading.ctl, reading.atl, reading.tsb) == (44.0, 57.0, 5.0)

    def test_nearest_number_above_wins(self):
        fragments = summary_labels() + [
            fragment("120", 0.1, 0.9),
            fragment("44", 0.1, 0.5),
        ]
        assert parse_spatial_layout(fragments).ctl == 44.0

    def test_column_fallback(self):
        """Numbers offset from their labels are assigned by horizontal order."""
        fragments = summary_labels() + [
            fragment("44", 0.2, 0.5),
            fragment("57", 0.5, 0.5),
            fragment("-13", 0.8, 0.5),
        ]

        reading = parse_spatial_layout(fragments)

        assert (reading.ctl, reading.atl, reading.tsb) == (44.0, 57.0, -13.0)
        assert reading.confidence == 0.95

    def test_out_of_range_numbers_ignored(self):
        fragments = summary_labels() + [fragment("450", 0.1, 0.5), fragment("57", 0.4, 0.5)]

        reading = parse_spatial_layout(fragments)
        assert reading.ctl is None
        assert reading.atl == 57.0

    def test_daily_stress_near_label(self):
        fragments = summary_labels() + [
            fragment("44", 0.1, 0.5),
            fragment("57", 0.4, 0.5),
            fragment("-13", 0.7, 0.5),
            fragment("TSS", 0.4, 0.2),
            fragment("85", 0.4, 0.3),
        ]
        assert parse_spatial_layout(fragments).daily_tss == 85.0

    def test_no_labels(self):
        assert parse_spatial_layout([fragment("44", 0.1, 0.5), fragment("57", 0.4, 0.5)]) is None

    def test_no_numbers(self):
        assert parse_spatial_layout(summary_labels()) is None


class TestParseText:
    """Tests for parsing joined text lines."""

    def test_mobile_layout(self):
        reading = parse_text("44\nFitness\n57\nFatigue\n5\nForm")

        assert (reading.ctl, reading.atl, reading.tsb) == (44.0, 57.0, 5.0)
        assert reading.confidence == 0.95

    def test_inline_values_with_date(self):
        reading = parse_text("03/15/2024 CTL: 72 ATL: 85 TSB: -13")

        assert (reading.ctl, reading.atl, reading.tsb) == (72.0, 85.0, -13.0)
        assert reading.effective_date == datetime(2024, 3, 15)
        assert reading.confidence == 0.95

    def test_daily_stress_line(self):
        reading = parse_text("Daily TSS: 85")

        assert reading.daily_tss == 85.0
        assert reading.ctl is None
        assert not reading.is_valid
        assert reading.has_learning_data

    def test_weekly_stress_is_not_daily(self):
        reading = parse_text("Weekly TSS: 650")

        assert reading.weekly_tss == 650.0
        assert reading.daily_tss is None

    def test_number_above_tss_label(self):
        assert parse_text("85\nTSS").daily_tss == 85.0

    def test_nothing_recognized(self):
        reading = parse_text("Settings\nProfile")

        assert reading.confidence == 0.2
        assert not reading.is_valid
        assert reading.raw_text == "Settings\nProfile"


class TestTableFormat:
    """Tests for the CTL/ATL/TSB table layout."""

    def test_three_values(self):
        assert parse_table_format("CTL ATL TSB\n72 85 -13") == (72.0, 85.0, -13.0, 0.8)

    def test_two_values(self):
        assert parse_table_format("CTL ATL\n72 85") == (72.0, 85.0, None, 0.6)

    def test_non_numeric_tokens_skipped(self):
        assert parse_table_format("Date CTL ATL TSB\n03/15 72 85 -13") == (72.0, 85.0, -13.0, 0.8)

    @pytest.mark.parametrize("text", ["CTL ATL TSB", "Fitness 72", "CTL ATL\n72"])
    def test_no_table(self, text):
        assert parse_table_format(text) is None


class TestParseFragments:
    """Tests for the spatial-then-text strategy."""

    def test_spatial_preferred(self):
        fragments = summary_labels() + [
            fragment("44", 0.1, 0.5),
            fragment("57", 0.4, 0.5),
            fragment("-13", 0.7, 0.5),
        ]
        assert parse_fragments(fragments).tsb == -13.0

    def test_text_fallback(self):
        reading = parse_fragments([fragment("CTL: 72 ATL: 85 TSB: -13", 0.5, 0.5)])

        assert (reading.ctl, reading.atl, reading.tsb) == (72.0, 85.0, -13.0)


class TestHelpers:
    """Tests for number, date and confidence helpers."""

    @pytest.mark.parametrize("line,expected", [
        ("72", 72.0),
        ("↑ 72", 72.0),
        ("85 TSS", 85.0),
        ("Fitness 44.5", 44.5),
        ("600", None),
        ("0", None),
        ("Fitness", None),
    ])
    def test_extract_number(self, line, expected):
        assert extract_number(line) == expected

    @pytest.mark.parametrize("line,expected", [
        ("03/15/2024", datetime(2024, 3, 15)),
        ("3/5/24", datetime(2024, 3, 5)),
        ("Updated 2024-03-15", datetime(2024, 3, 15)),
        ("March 15, 2024", datetime(2024, 3, 15)),
        ("13/45/2024", None),
        ("no date here", None),
    ])
    def test_extract_date(self, line, expected):
        assert extract_date(line) == expected

    @pytest.mark.parametrize("count,expected", [(0, 0.2), (1, 0.5), (2, 0.75), (3, 0.95), (4, 0.95)])
    def test_match_confidence(self, count, expected):
        assert match_confidence(count) == expected
