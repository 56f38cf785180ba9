from types import SimpleNamespace

import pytest

from agentswarm.models.clients.responses import (
  ChunkTranslator,
  to_chat_completion,
  to_input_items,
  to_response_tool_choice,
)


class TestInputItems:
  def test_assistant_text_and_calls_become_separate_items(self):
    items = to_input_items(
      [
        {"role": "system", "content": "Execute step 2."},
        {
          "role": "assistant",
          "content": "Looking it up.",
          "tool_calls": [{"id": "call_1", "type": "function", "function": {"name": "lookup", "arguments": "{}"}}],
        },
        {"role": "tool", "tool_call_id": "call_1", "name": "lookup", "content": ""},
      ]
    )

    assert items == [
      {"role": "system", "content": "Execute step 2."},
      {"role": "assistant", "content": "Looking it up."},
      {"type": "function_call", "call_id": "call_1", "name": "lookup", "arguments": "{}"},
      {"type": "function_call_output", "call_id": "call_1", "output": ""},
    ]

  def test_tool_choice(self):
    assert to_response_tool_choice("auto") == "auto"
    assert to_response_tool_choice({"type": "function", "function": {"name": "lookup"}}) == {
      "type": "function",
      "name": "lookup",
    }


class TestChatCompletion:
  def test_text_parts_are_joined(self):
    response = {
      "id": "resp_1",
      "output": [
        {"type": "reasoning", "summary": []},
        {"type": "message", "content": [{"type": "output_text", "text": "Hello "}, {"type": "output_text", "text": "Ada"}]},
      ],
    }
    choice = to_chat_completion(response)["choices"][0]
    assert choice["message"]["content"] == "Hello Ada"
    assert choice["message"]["tool_calls"] == []
    assert choice["finish_reason"] == "stop"


class TestChunkTranslator:
  def test_calls_are_numbered_in_order_of_appearance(self):
    translator = ChunkTranslator()
    events = [
      SimpleNamespace(type="response.output_item.added", output_index=3, item=SimpleNamespace(type="function_call", call_id="b", name="second", arguments="")),
      SimpleNamespace(type="response.output_item.added", output_index=0, item=SimpleNamespace(type="message")),
      SimpleNamespace(type="response.function_call_arguments.delta", output_index=3, delta="{}"),
      SimpleNamespace(type="response.function_call_arguments.delta", output_index=7, delta="lost"),
    ]
    chunks = [chunk for event in events for chunk in translator.translate(event)]

    calls = [chunk["choices"][0]["delta"]["tool_calls"][0] for chunk in chunks]
    assert [(c["index"], c["id"]) for c in calls] == [(0, "b"), (0, None)]
    assert calls[1]["function"]["arguments"] == "{}"

  def test_completion_without_calls(self):
    translator = ChunkTranslator()
    chunks = translator.translate(SimpleNamespace(type="response.completed", response=SimpleNamespace(id="resp_7")))
    assert chunks[0]["choices"][0]["finish_reason"] == "stop"
    assert translator.response_id == "resp_7"

  def test_failed_stream_raises(self):
    event = SimpleNamespace(
      type="response.failed", response=SimpleNamespace(error=SimpleNamespace(message="quota exceeded"))
    )
    with pytest.raises(RuntimeError, match="quota exceeded"):
      ChunkTranslator().translate(event)
