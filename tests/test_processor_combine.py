"""Tests for consecutive message combining."""

from session_dex.models import Message
from session_dex.processor.combine import combine_consecutive_messages, count_combined_messages


def make_message(index: int, role: str, content: str, **kwargs) -> Message:
    return Message(
        id=f"conv:{index}",
        conversation_id="conv",
        role=role,
        content=content,
        message_index=index,
        **kwargs,
    )


class TestCombineConsecutiveMessages:
    """Tests for combine_consecutive_messages."""

    def test_merges_assistant_run(self) -> None:
        messages = [
            make_message(0, "assistant", "a"),
            make_message(1, "assistant", "b"),
            make_message(2, "assistant", "c"),
            make_message(3, "user", "next"),
        ]

        result = combine_consecutive_messages(messages)

        assert len(result.messages) == 2
        assert result.messages[0].content == "a\n\nb\n\nc"
        assert result.messages[0].message_ids == ["conv:0", "conv:1", "conv:2"]
        assert result.messages[0].original_indices == [0, 1, 2]
        assert result.messages[1].role == "user"
        assert result.messages[1].content == "next"

    def test_index_map(self) -> None:
        messages = [
            make_message(0, "user", "q"),
            make_message(1, "assistant", "a"),
            make_message(2, "assistant", "b"),
            make_message(3, "user", "q2"),
        ]

        result = combine_consecutive_messages(messages)

        assert result.index_map == {0: 0, 1: 1, 2: 1, 3: 2}

    def test_system_messages_never_merge(self) -> None:
        messages = [
            make_message(0, "system", "s1"),
            make_message(1, "system", "s2"),
        ]

        result = combine_consecutive_messages(messages)

        assert [m.content for m in result.messages] == ["s1", "s2"]

    def test_stats_use_peak_and_sum(self) -> None:
        messages = [
            make_message(0, "assistant", "a", input_tokens=100, output_tokens=10, total_lines_added=2),
            make_message(
                1, "assistant", "b", input_tokens=50, cache_read_tokens=400, output_tokens=20,
                total_lines_added=3, total_lines_removed=1,
            ),
        ]

        combined = combine_consecutive_messages(messages).messages[0]

        assert combined.input_tokens == 50
        assert combined.cache_read_tokens == 400
        assert combined.cache_creation_tokens is None
        assert combined.output_tokens == 30
        assert combined.total_lines_added == 5
        assert combined.total_lines_removed == 1

    def test_timestamp_from_first_member(self) -> None:
        messages = [
            make_message(0, "user", "a", timestamp="2025-01-15T10:00:00.000Z"),
            make_message(1, "user", "b", timestamp="2025-01-15T10:05:00.000Z"),
        ]

        combined = combine_consecutive_messages(messages).messages[0]

        assert combined.timestamp == "2025-01-15T10:00:00.000Z"

    def test_empty_input(self) -> None:
        result = combine_consecutive_messages([])

        assert result.messages == []
        assert result.index_map == {}


class TestCountCombinedMessages:
    """Tests for count_combined_messages."""

    def test_counts_groups(self) -> None:
        messages = [
            make_message(0, "user", "q"),
            make_message(1, "assistant", "a"),
            make_message(2, "assistant", "b"),
            make_message(3, "system", "s"),
            make_message(4, "system", "s"),
        ]

        assert count_combined_messages(messages) == 4
