from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from llm_core.accumulator import StreamAccumulator, StreamLimits, fold_stream
from llm_core.errors import StreamError, StreamLimitExceeded
from llm_core.types import Chunk, Role, Tokens, ToolCall
from tests.llm_core.support.fakes import FakeLogger


def test_concatenates_content_in_order() -> None:
    accumulator = StreamAccumulator()

    accumulator.add(Chunk(content="Hello "))
    accumulator.add(Chunk(content="World"))

    assert accumulator.get_content() == "Hello World"


def test_concatenates_thinking_separately() -> None:
    accumulator = StreamAccumulator()

    accumulator.add(Chunk(thinking="Let me "))
    accumulator.add(Chunk(content="Answer", thinking="think"))

    assert accumulator.get_thinking() == "Let me think"
    assert accumulator.get_content() == "Answer"


def test_content_ceiling_is_inclusive() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_content_bytes=100))

    accumulator.add(Chunk(content="a" * 50))
    accumulator.add(Chunk(content="b" * 50))

    assert len(accumulator.get_content()) == 100


def test_content_over_ceiling_raises_on_the_offending_chunk(
    fake_logger: FakeLogger,
) -> None:
    accumulator = StreamAccumulator(
        StreamLimits(max_content_bytes=100),
        logger=fake_logger,
    )
    accumulator.add(Chunk(content="a" * 50))

    with pytest.raises(StreamLimitExceeded) as excinfo:
        accumulator.add(Chunk(content="b" * 51))

    assert excinfo.value.limit_name == "max_content_bytes"
    assert excinfo.value.limit == 100
    assert "100 bytes" in str(excinfo.value)
    assert fake_logger.events("error") == ["stream.limit_exceeded"]


def test_content_size_counts_utf8_bytes() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_content_bytes=4))

    accumulator.add(Chunk(content="é"))
    accumulator.add(Chunk(content="é"))

    with pytest.raises(StreamLimitExceeded):
        accumulator.add(Chunk(content="e"))


def test_thinking_shares_the_content_ceiling() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_content_bytes=10))
    accumulator.add(Chunk(content="0123456789", thinking="0123456789"))

    with pytest.raises(StreamLimitExceeded, match="thinking"):
        accumulator.add(Chunk(thinking="x"))


def test_tool_call_count_limit_raises_on_new_id_only() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_tool_calls=2))
    accumulator.add(Chunk(tool_calls=(ToolCall(id="call_1", name="a"),)))
    accumulator.add(Chunk(tool_calls=(ToolCall(id="call_2", name="b"),)))
    accumulator.add(
        Chunk(tool_calls=(ToolCall(id="call_2", name="b", arguments='{"x":'),))
    )

    with pytest.raises(StreamLimitExceeded) as excinfo:
        accumulator.add(Chunk(tool_calls=(ToolCall(id="call_3", name="c"),)))

    assert excinfo.value.limit_name == "max_tool_calls"


def test_tool_argument_limit_is_per_tool() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_argument_bytes=10))
    accumulator.add(
        Chunk(tool_calls=(ToolCall(id="call_1", name="a", arguments="0123456789"),))
    )
    accumulator.add(
        Chunk(tool_calls=(ToolCall(id="call_2", name="b", arguments="0123456789"),))
    )

    with pytest.raises(StreamLimitExceeded) as excinfo:
        accumulator.add(
            Chunk(tool_calls=(ToolCall(id="call_1", name="a", arguments="x"),))
        )

    assert excinfo.value.limit_name == "max_argument_bytes"


def test_accumulator_cannot_be_reused_after_violation() -> None:
    accumulator = StreamAccumulator(StreamLimits(max_content_bytes=1))
    with pytest.raises(StreamLimitExceeded):
        accumulator.add(Chunk(content="too long"))

    with pytest.raises(StreamError):
        accumulator.add(Chunk(content=""))
    with pytest.raises(StreamError):
        accumulator.to_message()


def test_to_message_builds_tool_call_from_mapping_arguments() -> None:
    accumulator = StreamAccumulator()

    accumulator.add(
        Chunk(
            tool_calls=(
                ToolCall(
                    id="call_1",
                    name="get_weather",
                    arguments={"city": "London"},
                ),
            )
        )
    )
    message = accumulator.to_message()

    assert message.role == Role.ASSISTANT
    assert len(message.tool_calls) == 1
    assert message.tool_calls[0].id == "call_1"
    assert message.tool_calls[0].name == "get_weather"
    assert dict(message.tool_calls[0].arguments) == {"city": "London"}


def test_to_message_joins_streamed_argument_fragments() -> None:
    accumulator = StreamAccumulator()
    fragments = ['{"ci', 'ty": "Par', 'is"}']

    accumulator.add(Chunk(tool_calls=(ToolCall(id="call_1", name="get_weather"),)))
    for fragment in fragments:
        accumulator.add(
            Chunk(tool_calls=(ToolCall(id="call_1", name="", arguments=fragment),))
        )

    tool_call = accumulator.to_message().tool_calls[0]
    assert tool_call.name == "get_weather"
    assert dict(tool_call.arguments) == {"city": "Paris"}


def test_incomplete_or_invalid_arguments_become_empty() -> None:
    accumulator = StreamAccumulator()
    accumulator.add(
        Chunk(
            tool_calls=(
                ToolCall(id="a", name="first", arguments='{"unterminated": '),
                ToolCall(id="b", name="second", arguments="[1, 2]"),
                ToolCall(id="c", name="third"),
            )
        )
    )

    tool_calls = accumulator.to_message().tool_calls

    assert [call.name for call in tool_calls] == ["first", "second", "third"]
    assert all(dict(call.arguments) == {} for call in tool_calls)


def test_stop_reason_and_tokens_are_last_write_wins() -> None:
    accumulator = StreamAccumulator()

    accumulator.add(Chunk(content="a", tokens=Tokens(input=5, output=1)))
    accumulator.add(Chunk(content="b", stop_reason="length"))
    accumulator.add(Chunk(stop_reason="stop", tokens=Tokens(input=5, output=9)))
    accumulator.add(Chunk(content="c"))
    message = accumulator.to_message(model="gpt-4o-mini")

    assert message.text == "abc"
    assert message.stop_reason == "stop"
    assert message.tokens == Tokens(input=5, output=9)
    assert message.model == "gpt-4o-mini"


def test_thinking_is_absent_when_empty() -> None:
    accumulator = StreamAccumulator()
    accumulator.add(Chunk(content="hi", thinking=""))

    message = accumulator.to_message()

    assert message.thinking is None
    assert message.has_thinking() is False


@pytest.mark.asyncio
async def test_fold_stream_consumes_async_chunks() -> None:
    async def _chunks() -> AsyncIterator[Chunk]:
        yield Chunk(content="Hel", is_first=True)
        yield Chunk(content="lo")
        yield Chunk(stop_reason="stop", is_last=True)

    message = await fold_stream(_chunks(), model="llama3")

    assert message.text == "Hello"
    assert message.model == "llama3"
    assert message.stop_reason == "stop"


@pytest.mark.asyncio
async def test_fold_stream_propagates_limit_violations() -> None:
    async def _chunks() -> AsyncIterator[Chunk]:
        yield Chunk(content="12345")
        yield Chunk(content="6")

    with pytest.raises(StreamLimitExceeded):
        await fold_stream(_chunks(), limits=StreamLimits(max_content_bytes=5))


def test_stream_limits_reject_negative_values() -> None:
    with pytest.raises(ValueError, match="max_tool_calls"):
        StreamLimits(max_tool_calls=-1)
