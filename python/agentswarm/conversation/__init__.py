from .message import (
  ConversationRole,
  ConversationMessage,
  FunctionToolCall,
  ToolCall,
  UserMessage,
  SystemMessage,
  AssistantMessage,
  ToolCallResponseMessage,
  MessageConverter,
  to_dict,
  from_dict,
  to_wire,
)
from .state import ConversationState, validate_tool_pairing

__all__ = [
  "ConversationRole",
  "ConversationMessage",
  "FunctionToolCall",
  "ToolCall",
  "UserMessage",
  "SystemMessage",
  "AssistantMessage",
  "ToolCallResponseMessage",
  "MessageConverter",
  "ConversationState",
  "validate_tool_pairing",
  "to_dict",
  "from_dict",
  "to_wire",
]
