"""
Tests for taskkeeper utility helpers.

Tests cover tag string encoding and id generation.
"""

import logging
from unittest.mock import patch

import pytest

from taskkeeper.utils.id_utils import SUB_TASK_ID_PREFIX, TASK_ID_PREFIX, generate_unique_id
from taskkeeper.utils.tag_utils import normalize_tags, string_to_tags, tags_to_string


class TestTagEncoding:
    """Tests for tags_to_string / string_to_tags."""

    def test_join_tags(self):
        """Test tags are joined with commas in order."""
        assert tags_to_string(["work", "urgent", "q3"]) == "work,urgent,q3"

    def test_empty_list_is_empty_string(self):
        """Test the empty list maps to the empty string."""
        assert tags_to_string([]) == ""
        assert tags_to_string(None) == ""

    def test_empty_string_is_empty_list(self):
        """Test the empty string maps back to an empty list, not ['']."""
        assert string_to_tags("") == []
        assert string_to_tags(None) == []

    def test_split_preserves_order(self):
        """Test tags come back in stored order."""
        assert string_to_tags("b,a,c") == ["b", "a", "c"]

    @pytest.mark.parametrize(
        "tags",
        [
            [],
            ["single"],
            ["work", "home"],
            ["with space", "dup", "dup"],
        ],
    )
    def test_round_trip(self, tags):
        """Test encode/decode reproduces tag lists without commas."""
        encoded = tags_to_string(tags)

        assert string_to_tags(encoded) == tags
        assert tags_to_string(string_to_tags(encoded)) == encoded

    def test_comma_in_tag_logs_warning(self, caplog):
        """Test a tag containing the separator is reported."""
        with caplog.at_level(logging.WARNING, logger="taskkeeper.utils.tag_utils"):
            encoded = tags_to_string(["a,b"])

        assert encoded == "a,b"
        assert string_to_tags(encoded) == ["a", "b"]
        assert "will be split" in caplog.text

    @pytest.mark.parametrize(
        "tags, expected",
        [
            ([""], []),
            (None, []),
            (["a,b", "c"], ["a", "b", "c"]),
            (["a", ""], ["a", ""]),
            (["work", "home"], ["work", "home"]),
        ],
    )
    def test_normalize_tags(self, tags, expected):
        """Test normalized tags equal what a stored value splits back into."""
        assert normalize_tags(tags) == expected


class TestGenerateUniqueId:
    """Tests for generate_unique_id."""

    def test_default_prefix(self):
        """Test ids start with the task prefix followed by digits."""
        task_id = generate_unique_id()

        assert task_id.startswith(TASK_ID_PREFIX)
        assert task_id[len(TASK_ID_PREFIX):].isdigit()

    def test_custom_prefix(self):
        """Test the prefix argument is used."""
        assert generate_unique_id(SUB_TASK_ID_PREFIX).startswith("stid")

    def test_timestamp_plus_random_offset(self):
        """Test the numeric part is the millisecond timestamp plus the offset."""
        with patch("taskkeeper.utils.id_utils.time.time", return_value=1700000000.5), \
                patch("taskkeeper.utils.id_utils.random.randrange", return_value=42):
            task_id = generate_unique_id()

        assert task_id == f"tid{1700000000500 + 42}"

    def test_offset_range(self):
        """Test the random offset is drawn from [0, 1000)."""
        with patch("taskkeeper.utils.id_utils.random.randrange", return_value=0) as mock_range:
            generate_unique_id()

        mock_range.assert_called_once_with(1000)
