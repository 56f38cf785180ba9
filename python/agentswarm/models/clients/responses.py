"""
Translation between chat completions messages and the Responses API.

Requests go out as Responses input items, and responses and stream events come
back in the chat completions shape the gateway reads, so a conversation-bound
client looks like any other client to the rest of the swarm.

  chat message                          Responses input item
  {"role": "user", "content": ...}      {"role": "user", "content": ...}
  assistant `tool_calls[i]`             {"type": "function_call", "call_id", "name", "arguments"}
  {"role": "tool", "tool_call_id"}      {"type": "function_call_output", "call_id", "output"}
"""

from typing import Any, Dict, List, Mapping, Optional, Union


def _field(obj, key, default=None):
  if obj is None:
    return default
  if isinstance(obj, Mapping):
    return obj.get(key, default)
  return getattr(obj, key, default)


def to_input_items(messages: List[dict]) -> List[dict]:
  items = []
  for message in messages:
    role = message.get("role")
    if role == "tool":
      items.append(
        {"type": "function_call_output", "call_id": message["tool_call_id"], "output": message.get("content") or ""}
      )
      continue

    if message.get("content"):
      items.append({"role": role, "content": message["content"]})
    for tool_call in message.get("tool_calls") or []:
      items.append(
        {
          "type": "function_call",
          "call_id": tool_call["id"],
          "name": tool_call["function"]["name"],
          "arguments": tool_call["function"].get("arguments") or "",
        }
      )
  return items


def to_response_tools(tools: List[dict]) -> List[dict]:
  """Function tools are flattened, hosted tools such as `web_search` pass through."""
  converted = []
  for tool in tools:
    if tool.get("type") == "function":
      converted.append({"type": "function", **tool["function"]})
    else:
      converted.append(tool)
  return converted


def to_response_tool_choice(tool_choice: Union[str, dict]) -> Union[str, dict]:
  if isinstance(tool_choice, dict) and tool_choice.get("type") == "function":
    return {"type": "function", "name": tool_choice["function"]["name"]}
  return tool_choice


def to_chat_completion(response) -> Dict[str, Any]:
  text = []
  tool_calls = []
  for item in _field(response, "output") or []:
    item_type = _field(item, "type")
    if item_type == "message":
      for part in _field(item, "content") or []:
        if _field(part, "type") == "output_text":
          text.append(_field(part, "text") or "")
    elif item_type == "function_call":
      tool_calls.append(
        {
          "id": _field(item, "call_id"),
          "type": "function",
          "function": {"name": _field(item, "name"), "arguments": _field(item, "arguments") or ""},
        }
      )

  return {
    "id": _field(response, "id"),
    "choices": [
      {
        "message": {"role": "assistant", "content": "".join(text), "tool_calls": tool_calls},
        "finish_reason": "tool_calls" if tool_calls else "stop",
      }
    ],
  }


def _chunk(content: Optional[str] = None, tool_call: Optional[dict] = None, finish_reason: Optional[str] = None):
  delta: Dict[str, Any] = {"content": content, "tool_calls": [tool_call] if tool_call else []}
  return {"choices": [{"delta": delta, "finish_reason": finish_reason}]}


class ChunkTranslator:
  """
  Turns Responses stream events into chat completion chunks.

  Function calls are numbered in the order they appear, their output index in
  the response is only used to route argument fragments.
  """

  def __init__(self):
    self._indexes: Dict[int, int] = {}
    self.response_id: Optional[str] = None

  def translate(self, event) -> List[dict]:
    event_type = _field(event, "type")

    if event_type == "response.output_text.delta":
      return [_chunk(content=_field(event, "delta"))]

    if event_type == "response.output_item.added":
      item = _field(event, "item")
      if _field(item, "type") != "function_call":
        return []
      index = self._indexes.setdefault(_field(event, "output_index"), len(self._indexes))
      header = {
        "index": index,
        "id": _field(item, "call_id"),
        "type": "function",
        "function": {"name": _field(item, "name"), "arguments": _field(item, "arguments") or None},
      }
      return [_chunk(tool_call=header)]

    if event_type == "response.function_call_arguments.delta":
      index = self._indexes.get(_field(event, "output_index"))
      if index is None:
        return []
      fragment = {"index": index, "id": None, "function": {"name": None, "arguments": _field(event, "delta")}}
      return [_chunk(tool_call=fragment)]

    if event_type == "response.completed":
      self.response_id = _field(_field(event, "response"), "id")
      return [_chunk(finish_reason="tool_calls" if self._indexes else "stop")]

    if event_type in ("response.failed", "error"):
      error = _field(_field(event, "response"), "error") or event
      raise RuntimeError(f"Response stream failed: {_field(error, 'message') or error}")

    return []
