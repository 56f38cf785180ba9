"""
Shared utilities for testing swarms without a model provider.

The mock models answer `complete_chat` the way the real clients do: a
coroutine resolving to a chat completions response, or an async generator of
chunks when streaming.
"""

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional


class MockModel:
  """
  Mock model that replays scripted assistant turns.

  Usage:
      # Simple response
      model = MockModel([{"content": "Hello!"}])

      # Tool call response
      model = MockModel([{"tool_calls": [{"name": "calculator", "arguments": '{"x": 5, "y": 3}'}]}])

  Tool call ids are `tool_call_<n>`, numbered across the whole script, so two
  models built from the same script produce identical ids whether they stream
  or not.
  """

  def __init__(self, messages: Optional[List[Dict[str, Any]]] = None, name: str = "MockModel"):
    self.provided_messages = list(messages or [])
    self.tool_call_counter = 0
    self.name = name
    self.call_count = 0
    self.requests: List[Dict[str, Any]] = []
    self.closed = False

  def complete_chat(self, messages, stream: bool = False, **kwargs):
    self.call_count += 1
    self.requests.append({"messages": messages, "stream": stream, **kwargs})

    if self.provided_messages:
      provided_message = self.provided_messages.pop(0)
    else:
      provided_message = {"content": "Default MockModel response"}

    if stream:
      return self._complete_chat_streaming(provided_message)
    return self._complete_chat_non_streaming(provided_message)

  def _next_id(self) -> int:
    n = self.tool_call_counter
    self.tool_call_counter += 1
    return n

  async def _complete_chat_streaming(self, provided_message: Dict[str, Any]):
    def chunk(content=None, tool_calls=None, finish_reason=None):
      delta = SimpleNamespace(content=content, tool_calls=tool_calls or [])
      return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])

    for character in provided_message.get("content", ""):
      yield chunk(content=character)

    for index, provided_tool_call in enumerate(provided_message.get("tool_calls", [])):
      n = self._next_id()
      header = SimpleNamespace(
        index=index,
        id=f"tool_call_{n}",
        type="function",
        function=SimpleNamespace(name=provided_tool_call["name"], arguments=""),
      )
      yield chunk(tool_calls=[header])

      for character in provided_tool_call.get("arguments", ""):
        fragment = SimpleNamespace(index=index, id=None, type=None, function=SimpleNamespace(name=None, arguments=character))
        yield chunk(tool_calls=[fragment])

    yield chunk(finish_reason="tool_calls" if provided_message.get("tool_calls") else "stop")

  async def _complete_chat_non_streaming(self, provided_message: Dict[str, Any]):
    tool_calls = []
    for provided_tool_call in provided_message.get("tool_calls", []):
      tool_calls.append(
        SimpleNamespace(
          id=f"tool_call_{self._next_id()}",
          type="function",
          function=SimpleNamespace(name=provided_tool_call["name"], arguments=provided_tool_call.get("arguments", "")),
        )
      )
    message = SimpleNamespace(role="assistant", content=provided_message.get("content", ""), tool_calls=tool_calls)
    finish_reason = "tool_calls" if tool_calls else "stop"
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])

  def system_prompts(self) -> List[str]:
    return [r["messages"][0]["content"] for r in self.requests]

  def tool_names(self, request_index: int) -> List[str]:
    tools = self.requests[request_index].get("tools") or []
    return [t["function"]["name"] if t.get("type") == "function" else t["type"] for t in tools]

  async def aclose(self):
    self.closed = True


class RepeatingIdModel(MockModel):
  """
  Mock model whose tool calls all carry the id `tool_call_0`, across turns and
  within one response.
  """

  def _next_id(self) -> int:
    return 0


class SlowMockModel(MockModel):
  """
  Mock model with a delay per call that records how many calls overlap.
  """

  def __init__(self, messages: Optional[List[Dict[str, Any]]] = None, delay: float = 0.05):
    super().__init__(messages)
    self.delay = delay
    self.in_flight = 0
    self.max_in_flight = 0

  async def _complete_chat_non_streaming(self, provided_message: Dict[str, Any]):
    self.in_flight += 1
    self.max_in_flight = max(self.max_in_flight, self.in_flight)
    try:
      await asyncio.sleep(self.delay)
      return await super()._complete_chat_non_streaming(provided_message)
    finally:
      self.in_flight -= 1

  async def _complete_chat_streaming(self, provided_message: Dict[str, Any]):
    async for chunk in super()._complete_chat_streaming(provided_message):
      await asyncio.sleep(self.delay / 10)
      yield chunk


class ErrorMockModel(MockModel):
  """
  Mock model that raises `error` once `fail_after` calls have succeeded.
  """

  def __init__(
    self,
    messages: Optional[List[Dict[str, Any]]] = None,
    fail_after: int = 0,
    error: Optional[BaseException] = None,
  ):
    super().__init__(messages)
    self.fail_after = fail_after
    self.error = error or RuntimeError("Mock model error")

  def complete_chat(self, messages, stream: bool = False, **kwargs):
    if self.call_count >= self.fail_after:
      self.call_count += 1
      if stream:
        return self._failing_stream()
      return self._failing_call()
    return super().complete_chat(messages, stream, **kwargs)

  async def _failing_call(self):
    raise self.error

  async def _failing_stream(self):
    yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="partial", tool_calls=[]), finish_reason=None)])
    raise self.error


class StatefulMockModel(MockModel):
  """
  Mock model with server-side conversations, tracking which ones are open.
  """

  def __init__(self, messages: Optional[List[Dict[str, Any]]] = None, fail_close: bool = False):
    super().__init__(messages)
    self.open_conversations: List[str] = []
    self.opened = 0
    self.fail_close = fail_close

  async def open_conversation(self, metadata=None) -> str:
    self.opened += 1
    conversation_id = f"conv_{self.opened}"
    self.open_conversations.append(conversation_id)
    return conversation_id

  async def close_conversation(self, conversation_id: str):
    self.open_conversations.remove(conversation_id)
    if self.fail_close:
      raise RuntimeError("close failed")


def tool_call(name: str, arguments: str = "{}") -> Dict[str, str]:
  return {"name": name, "arguments": arguments}
