from dataclasses import dataclass
from typing import Dict, List, Optional

from .completion import Completion, ContentDelta, Delta, EndOfTurn, ToolCallDelta, new_tool_call_id
from ..conversation import FunctionToolCall, ToolCall


@dataclass
class _PartialToolCall:
  index: int
  id: str = ""
  name: str = ""
  arguments: str = ""


def _merge_id(accumulated: str, fragment: Optional[str]) -> str:
  # some transports repeat the full id on every chunk
  if not fragment or fragment == accumulated:
    return accumulated
  return accumulated + fragment


class StreamAccumulator:
  """
  Folds streamed deltas into one `Completion`.

  Text is concatenated, tool call fragments are grouped by their stream index.
  Deltas must be applied in arrival order. `finalize` (or an `EndOfTurn`
  delta) closes the accumulator and orders the tool calls by index.
  """

  def __init__(self):
    self._content: List[str] = []
    self._tool_calls: Dict[int, _PartialToolCall] = {}
    self._finish_reason: Optional[str] = None
    self._result: Optional[Completion] = None

  @property
  def closed(self) -> bool:
    return self._result is not None

  @property
  def content(self) -> str:
    return "".join(self._content)

  def apply(self, delta: Delta):
    if self.closed:
      raise RuntimeError("Cannot apply a delta to a finalized stream")

    match delta:
      case ContentDelta(text=text):
        self._content.append(text)
      case ToolCallDelta(index=index):
        partial = self._tool_calls.get(index)
        if partial is None:
          partial = self._tool_calls[index] = _PartialToolCall(index)
        partial.id = _merge_id(partial.id, delta.id)
        if delta.name:
          partial.name += delta.name
        if delta.arguments:
          partial.arguments += delta.arguments
      case EndOfTurn(finish_reason=finish_reason):
        self._finish_reason = finish_reason
        self.finalize()
      case _:
        raise TypeError(f"Unknown stream delta: {delta!r}")

  def finalize(self) -> Completion:
    if self._result is not None:
      return self._result

    tool_calls = []
    for index in sorted(self._tool_calls):
      partial = self._tool_calls[index]
      tool_calls.append(
        ToolCall(
          id=partial.id or new_tool_call_id(),
          function=FunctionToolCall(name=partial.name or "unknown", arguments=partial.arguments),
        )
      )
    self._result = Completion(self.content, tool_calls, self._finish_reason)
    return self._result
