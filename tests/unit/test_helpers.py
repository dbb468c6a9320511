"""Tests for formatting helpers."""

import pytest

from release_orchestrator.utils.helpers import format_duration, generate_id, truncate_text


def test_generate_id_prefix():
    run_id = generate_id("run")

    assert run_id.startswith("run-")
    assert len(run_id) == len("run-") + 8
    assert generate_id("run") != run_id


@pytest.mark.parametrize("seconds, expected", [
    (0.25, "250ms"),
    (12.34, "12.3s"),
    (245, "4m 05s"),
    (7260, "2h 01m"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_truncate_text():
    assert truncate_text("short", 10) == "short"
    assert truncate_text("a" * 20, 10) == "aaaaaaa..."
