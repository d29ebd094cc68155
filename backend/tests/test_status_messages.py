"""Tests for planning status messages."""

import pytest

from planchat.planning.status_messages import (
    STATUS_MESSAGES,
    get_status_message,
    should_enhance_message,
)


class TestGetStatusMessage:

    def test_no_timestamp_uses_first_entry(self):
        assert get_status_message("analyzing") == "Looking at your codebase..."

    def test_timestamp_selects_by_second(self):
        assert get_status_message("thinking", 2_000) == STATUS_MESSAGES["thinking"][2]
        assert get_status_message("thinking", 2_999) == STATUS_MESSAGES["thinking"][2]

    @pytest.mark.parametrize("phase", sorted(STATUS_MESSAGES))
    def test_rotation_is_periodic(self, phase):
        pool_size = len(STATUS_MESSAGES[phase])
        t = 1_700_000_123_456
        assert get_status_message(phase, t) == get_status_message(phase, t + pool_size * 1000)

    def test_rotation_cycles_through_pool(self):
        seen = {get_status_message("cloning", t * 1000) for t in range(1, 9)}
        assert seen == set(STATUS_MESSAGES["cloning"])

    def test_deterministic(self):
        assert get_status_message("starting", 12_345) == get_status_message("starting", 12_345)

    def test_unknown_phase_is_capitalized(self):
        assert get_status_message("foo") == "Foo..."
        assert get_status_message("foo", 5_000) == "Foo..."

    def test_empty_phase(self):
        assert get_status_message("") == "..."


class TestShouldEnhanceMessage:

    @pytest.mark.parametrize("message", ["", "   ", None])
    def test_blank_message(self, message):
        assert should_enhance_message("analyzing", message)

    def test_bare_phase_label(self):
        assert should_enhance_message("analyzing", "Analyzing")
        assert should_enhance_message("thinking", "thinking")

    def test_real_message_is_kept(self):
        assert not should_enhance_message("analyzing", "Reading 42 files")
