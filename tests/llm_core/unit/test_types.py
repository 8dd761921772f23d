from __future__ import annotations

import base64
import dataclasses
import json
from pathlib import Path

import pytest

from llm_core.types import (
    Attachment,
    Chunk,
    Embedding,
    GeneratedImage,
    Message,
    Role,
    Tokens,
    ToolCall,
    guess_mime_type,
    to_attachments,
)


def test_tokens_total_and_dict() -> None:
    tokens = Tokens(input=10, output=5, cache_read=3)

    assert tokens.total == 15
    assert tokens.to_dict() == {
        "input": 10,
        "output": 5,
        "cache_creation": 0,
        "cache_read": 3,
        "total": 15,
    }


@pytest.mark.parametrize(
    "usage",
    [
        {"prompt_tokens": 12, "completion_tokens": 4},
        {"input_tokens": 12, "output_tokens": 4},
        {"input": 12, "output": 4},
    ],
)
def test_tokens_from_vendor_usage(usage: dict[str, object]) -> None:
    tokens = Tokens.from_mapping(usage)

    assert (tokens.input, tokens.output) == (12, 4)


def test_tokens_from_mapping_ignores_non_integers() -> None:
    tokens = Tokens.from_mapping(
        {"input_tokens": "12", "output_tokens": True, "cache_read_input_tokens": 2}
    )

    assert tokens == Tokens(cache_read=2)


def test_tool_call_arguments_are_read_only() -> None:
    source = {"city": "London"}
    call = ToolCall(id="call_1", name="get_weather", arguments=source)
    source["city"] = "Paris"

    assert call.arguments["city"] == "London"
    with pytest.raises(TypeError):
        call.arguments["city"] = "Rome"  # type: ignore[index]


def test_tool_call_from_openai_function_shape() -> None:
    call = ToolCall.from_mapping(
        {
            "id": "call_9",
            "type": "function",
            "function": {"name": "search", "arguments": '{"q": "x"}'},
        }
    )

    assert call == ToolCall(id="call_9", name="search", arguments='{"q": "x"}')


def test_tool_call_from_flat_shape_and_to_dict() -> None:
    call = ToolCall.from_mapping(
        {"id": "toolu_1", "name": "lookup", "arguments": {"id": 3}}
    )

    assert call.to_dict() == {
        "id": "toolu_1",
        "name": "lookup",
        "arguments": {"id": 3},
    }


def test_chunk_predicates() -> None:
    assert Chunk(content="hi").has_content() is True
    assert Chunk(content="").has_content() is False
    assert Chunk(thinking="hmm").has_thinking() is True
    assert Chunk(stop_reason="stop").is_done() is True
    assert Chunk(is_last=True).is_done() is True
    assert Chunk(content="x").is_done() is False


def test_message_is_immutable() -> None:
    message = Message.user("hello")

    with pytest.raises(dataclasses.FrozenInstanceError):
        message.text = "changed"  # type: ignore[misc]


def test_message_factories_set_roles() -> None:
    assert Message.system("s").role == Role.SYSTEM
    assert Message.user("u").role == Role.USER
    assert Message.assistant("a").role == Role.ASSISTANT


def test_assistant_message_with_tool_calls() -> None:
    call = ToolCall(id="call_1", name="get_weather", arguments={"city": "London"})
    message = Message.assistant("", tool_calls=[call], model="gpt-4o-mini")

    assert message.has_tool_calls() is True
    assert message.tool_calls == (call,)
    assert message.to_dict() == {
        "role": "assistant",
        "content": "",
        "tool_calls": [
            {"id": "call_1", "name": "get_weather", "arguments": {"city": "London"}}
        ],
    }


def test_tool_result_encodes_non_string_results() -> None:
    message = Message.tool_result("call_1", {"temperature": 18})

    assert message.is_tool_result() is True
    assert json.loads(message.text) == {"temperature": 18}
    assert message.to_dict() == {
        "role": "tool",
        "content": '{"temperature": 18}',
        "tool_call_id": "call_1",
    }


def test_tool_result_keeps_string_results() -> None:
    assert Message.tool_result("call_1", "done").text == "done"


def test_embedding_dimensions() -> None:
    assert Embedding(vectors=((0.1, 0.2, 0.3),)).dimensions == 3
    assert Embedding(vectors=()).dimensions == 0


def test_generated_image_base64_flag() -> None:
    assert GeneratedImage(data="aGk=").is_base64() is True
    assert GeneratedImage(url="https://img").is_base64() is False


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("photo.JPG", "image/jpeg"),
        ("diagram.svg", "image/svg+xml"),
        ("report.pdf", "application/pdf"),
        ("https://example.com/clip.mp3?sig=abc", "audio/mpeg"),
        ("notes.md", "text/markdown"),
        ("archive.tar.gz", "application/octet-stream"),
        ("README", "application/octet-stream"),
    ],
)
def test_guess_mime_type(name: str, expected: str) -> None:
    assert guess_mime_type(name) == expected


def test_attachment_from_path_reads_lazily(tmp_path: Path) -> None:
    image = tmp_path / "cat.png"
    image.write_bytes(b"\x89PNG")

    attachment = Attachment.from_path(image)
    image.write_bytes(b"\x89PNG-updated")

    assert attachment.filename == "cat.png"
    assert attachment.is_image()
    assert not attachment.is_url()
    assert attachment.get_content() == b"\x89PNG-updated"
    assert attachment.data_url() == (
        "data:image/png;base64," + base64.b64encode(b"\x89PNG-updated").decode()
    )


def test_attachment_from_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        Attachment.from_path(tmp_path / "missing.pdf")


def test_attachment_from_url_has_no_local_content() -> None:
    attachment = Attachment.from_url("https://example.com/doc.pdf")

    assert attachment.is_url()
    assert attachment.is_pdf()
    assert attachment.data_url() == "https://example.com/doc.pdf"
    with pytest.raises(ValueError, match="no local content"):
        attachment.get_content()


def test_attachment_from_content_and_base64() -> None:
    inline = Attachment.from_content('{"a": 1}', "application/json", "data.json")
    decoded = Attachment.from_base64(inline.to_base64(), "audio/wav")

    assert inline.is_text()
    assert inline.get_content() == b'{"a": 1}'
    assert decoded.get_content() == b'{"a": 1}'
    assert decoded.is_audio()
    assert not decoded.is_text()


def test_attachment_from_invalid_base64_raises() -> None:
    with pytest.raises(ValueError):
        Attachment.from_base64("not base64!", "image/png")


def test_to_attachments_normalizes_inputs(tmp_path: Path) -> None:
    local = tmp_path / "notes.txt"
    local.write_text("hello")
    existing = Attachment.from_content(b"x", "image/gif")

    attachments = to_attachments(["https://example.com/a.webp", str(local), existing])

    assert [item.mime_type for item in attachments] == [
        "image/webp",
        "text/plain",
        "image/gif",
    ]
    assert attachments[0].url == "https://example.com/a.webp"
    assert attachments[1].path == local
    assert attachments[2] is existing
    assert to_attachments(None) == ()
    assert to_attachments(local) == (Attachment.from_path(local),)


def test_user_message_with_attachments() -> None:
    message = Message.user("What is this?", attachments="https://example.com/cat.png")

    assert message.has_attachments()
    assert message.to_dict() == {
        "role": "user",
        "content": "What is this?",
        "attachments": [
            {"mime_type": "image/png", "url": "https://example.com/cat.png"}
        ],
    }
    assert not Message.user("plain").has_attachments()
    assert "attachments" not in Message.user("plain").to_dict()
