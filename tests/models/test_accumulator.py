import pytest

from agentswarm.conversation import FunctionToolCall, ToolCall
from agentswarm.models import Completion, ContentDelta, EndOfTurn, StreamAccumulator, ToolCallDelta


class TestStreamAccumulator:
  def test_content_is_concatenated(self):
    accumulator = StreamAccumulator()
    for text in ["Hel", "lo", " world"]:
      accumulator.apply(ContentDelta(text))
    accumulator.apply(EndOfTurn("stop"))

    completion = accumulator.finalize()
    assert completion.content == "Hello world"
    assert completion.tool_calls == []
    assert completion.finish_reason == "stop"

  def test_tool_calls_are_grouped_by_index(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, id="call_a", name="search", arguments=""))
    accumulator.apply(ToolCallDelta(1, id="call_b", name="weather", arguments='{"ci'))
    accumulator.apply(ToolCallDelta(0, arguments='{"q": '))
    accumulator.apply(ToolCallDelta(1, arguments='ty": "Oslo"}'))
    accumulator.apply(ToolCallDelta(0, arguments='"cats"}'))

    completion = accumulator.finalize()
    assert [(c.id, c.name, c.arguments) for c in completion.tool_calls] == [
      ("call_a", "search", '{"q": "cats"}'),
      ("call_b", "weather", '{"city": "Oslo"}'),
    ]

  def test_tool_calls_are_ordered_by_index_not_arrival(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(2, id="call_c", name="c"))
    accumulator.apply(ToolCallDelta(0, id="call_a", name="a"))
    completion = accumulator.finalize()
    assert [c.id for c in completion.tool_calls] == ["call_a", "call_c"]

  def test_repeated_id_is_not_duplicated(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, id="call_a", name="search", arguments="{"))
    accumulator.apply(ToolCallDelta(0, id="call_a", arguments="}"))
    call = accumulator.finalize().tool_calls[0]
    assert (call.id, call.name, call.arguments) == ("call_a", "search", "{}")

  def test_fragmented_name(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, id="call_a", name="get_"))
    accumulator.apply(ToolCallDelta(0, name="balance"))
    assert accumulator.finalize().tool_calls[0].name == "get_balance"

  def test_name_fragments_equal_to_the_prefix_are_kept(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, id="call_a", name="get_"))
    accumulator.apply(ToolCallDelta(0, name="get_"))
    assert accumulator.finalize().tool_calls[0].name == "get_get_"

  def test_id_fragments_are_concatenated(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, id="call_", name="search"))
    accumulator.apply(ToolCallDelta(0, id="abc"))
    assert accumulator.finalize().tool_calls[0].id == "call_abc"

  def test_missing_id_is_generated(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ToolCallDelta(0, name="search", arguments="{}"))
    call = accumulator.finalize().tool_calls[0]
    assert call.id.startswith("call_")

  def test_end_of_turn_closes(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ContentDelta("hi"))
    accumulator.apply(EndOfTurn("stop"))
    assert accumulator.closed
    with pytest.raises(RuntimeError):
      accumulator.apply(ContentDelta("more"))

  def test_finalize_is_idempotent(self):
    accumulator = StreamAccumulator()
    accumulator.apply(ContentDelta("hi"))
    assert accumulator.finalize() is accumulator.finalize()


class TestUniqueToolCallIds:
  def completion(self, *ids):
    return Completion("", [ToolCall(i, FunctionToolCall("echo", "{}")) for i in ids])

  def test_unique_ids_are_kept(self):
    completion = self.completion("call_a", "call_b").with_unique_tool_call_ids({"call_z"})
    assert [c.id for c in completion.tool_calls] == ["call_a", "call_b"]

  def test_used_ids_are_replaced(self):
    completion = self.completion("call_0", "call_1").with_unique_tool_call_ids({"call_0"})
    ids = [c.id for c in completion.tool_calls]
    assert ids[0] not in ("call_0", "call_1")
    assert ids[1] == "call_1"

  def test_ids_repeated_within_the_completion_are_replaced(self):
    completion = self.completion("call_0", "call_0", "call_0").with_unique_tool_call_ids()
    ids = [c.id for c in completion.tool_calls]
    assert ids[0] == "call_0"
    assert len(set(ids)) == 3
    assert [c.name for c in completion.tool_calls] == ["echo"] * 3
