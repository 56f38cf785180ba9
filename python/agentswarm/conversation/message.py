import cattrs

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class ConversationRole(Enum):
  USER = "user"
  SYSTEM = "system"
  ASSISTANT = "assistant"
  TOOL = "tool"


@dataclass
class FunctionToolCall:
  name: str
  arguments: str = field(default_factory=str)


@dataclass
class ToolCall:
  id: str
  function: FunctionToolCall
  type: str = "function"

  @property
  def name(self) -> str:
    return self.function.name

  @property
  def arguments(self) -> str:
    return self.function.arguments


@dataclass
class UserMessage:
  content: str = ""
  role: ConversationRole = ConversationRole.USER


@dataclass
class SystemMessage:
  content: str = ""
  role: ConversationRole = ConversationRole.SYSTEM


@dataclass
class AssistantMessage:
  content: str = ""
  tool_calls: list[ToolCall] = field(default_factory=list)
  # name of the agent that produced the message, not sent to the model
  sender: Optional[str] = None
  role: ConversationRole = ConversationRole.ASSISTANT


@dataclass
class ToolCallResponseMessage:
  tool_call_id: str
  name: str
  content: str = ""
  role: ConversationRole = ConversationRole.TOOL


ConversationMessage = Union[UserMessage, SystemMessage, AssistantMessage, ToolCallResponseMessage]

MESSAGE_CLASSES = {
  "user": UserMessage,
  "system": SystemMessage,
  "assistant": AssistantMessage,
  "tool": ToolCallResponseMessage,
}


class MessageConverter:
  """
  Converts conversation messages to and from plain dictionaries.

  `to_wire` produces the chat-completions shape sent to a model: internal
  fields such as `sender` are dropped, empty tool call lists are omitted and an
  assistant message with tool calls but no text carries `content: None`.
  """

  def __init__(self):
    self.converter = cattrs.Converter()
    self._register_hooks()

  def _register_hooks(self):
    @self.converter.register_structure_hook
    def structure_conversation_role(data: str, cls) -> ConversationRole:
      return cls(data)

    self.converter.register_unstructure_hook(ConversationRole, lambda role: role.value)

    @self.converter.register_structure_hook
    def structure_conversation_message(obj: dict, cls) -> ConversationMessage:
      role = obj.get("role")
      typ = MESSAGE_CLASSES.get(role)
      if typ is None:
        raise ValueError(f"Unknown conversation role: {role}")
      obj = dict(obj)
      if obj.get("content") is None:
        obj["content"] = ""
      if typ is AssistantMessage and obj.get("tool_calls") is None:
        obj["tool_calls"] = []
      return self.converter.structure(obj, typ)

  def to_dict(self, message: ConversationMessage) -> dict:
    return self.converter.unstructure(message)

  def from_dict(self, obj: dict) -> ConversationMessage:
    return self.converter.structure(obj, ConversationMessage)

  def to_wire(self, message: ConversationMessage) -> dict[str, Any]:
    d = self.to_dict(message)
    d.pop("sender", None)
    if isinstance(message, AssistantMessage):
      if not d["tool_calls"]:
        del d["tool_calls"]
      elif not d["content"]:
        d["content"] = None
    return d


_CONVERTER = MessageConverter()


def to_dict(message: ConversationMessage) -> dict:
  return _CONVERTER.to_dict(message)


def from_dict(obj: dict) -> ConversationMessage:
  return _CONVERTER.from_dict(obj)


def to_wire(message: ConversationMessage) -> dict:
  return _CONVERTER.to_wire(message)
