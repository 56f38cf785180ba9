import uuid

from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Optional, Union

from ..conversation import AssistantMessage, ConversationMessage, ToolCall, to_wire


def new_tool_call_id() -> str:
  return f"call_{uuid.uuid4().hex[:24]}"


@dataclass
class CompletionRequest:
  """
  Everything one completion call needs.

  `tools` and `tool_choice` are only sent when the agent has tools, an empty
  tools list makes some providers invent tools.
  """

  model: str
  system_prompt: str
  messages: List[ConversationMessage]
  tools: List[dict] = field(default_factory=list)
  tool_choice: Optional[Union[str, dict]] = None
  parallel_tool_calls: Optional[bool] = None
  stream: bool = False
  agent_name: Optional[str] = None
  correlation_id: Optional[str] = None

  def wire_messages(self) -> List[Dict[str, Any]]:
    messages = [{"role": "system", "content": self.system_prompt}]
    messages.extend(to_wire(m) for m in self.messages)
    return messages

  def wire_kwargs(self) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {}
    if self.tools:
      kwargs["tools"] = self.tools
      if self.tool_choice is not None:
        kwargs["tool_choice"] = self.tool_choice
      if self.parallel_tool_calls is not None:
        kwargs["parallel_tool_calls"] = self.parallel_tool_calls
    return kwargs


@dataclass
class Completion:
  content: str = ""
  tool_calls: List[ToolCall] = field(default_factory=list)
  finish_reason: Optional[str] = None

  def to_message(self, sender: Optional[str] = None) -> AssistantMessage:
    return AssistantMessage(content=self.content, tool_calls=list(self.tool_calls), sender=sender)

  def with_unique_tool_call_ids(self, used: Collection[str] = ()) -> "Completion":
    """
    Give a fresh id to every tool call whose id is in `used` or repeats an
    earlier call of this completion. Providers that number calls per response
    reuse ids such as `call_0` on every turn.
    """
    seen = set(used)
    tool_calls = []
    for tool_call in self.tool_calls:
      if tool_call.id in seen:
        tool_call = ToolCall(id=new_tool_call_id(), function=tool_call.function, type=tool_call.type)
      seen.add(tool_call.id)
      tool_calls.append(tool_call)
    return Completion(self.content, tool_calls, self.finish_reason)


@dataclass(frozen=True)
class ContentDelta:
  text: str


@dataclass(frozen=True)
class ToolCallDelta:
  index: int
  id: Optional[str] = None
  name: Optional[str] = None
  arguments: Optional[str] = None


@dataclass(frozen=True)
class EndOfTurn:
  finish_reason: Optional[str] = None


Delta = Union[ContentDelta, ToolCallDelta, EndOfTurn]
