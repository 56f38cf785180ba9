from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .message import (
  AssistantMessage,
  ConversationMessage,
  ToolCallResponseMessage,
)


def get_tool_use_ids(message: ConversationMessage) -> List[str]:
  """
  Extract tool call ids from an assistant message.

  Args:
    message: Any conversation message

  Returns:
    List of tool call ids, or empty list if the message requests no tools
  """
  if isinstance(message, AssistantMessage):
    return [tc.id for tc in message.tool_calls if tc.id]
  return []


def get_tool_result_id(message: ConversationMessage) -> Optional[str]:
  if isinstance(message, ToolCallResponseMessage):
    return message.tool_call_id
  return None


def validate_tool_pairing(messages: Iterable[ConversationMessage]) -> Tuple[bool, Optional[str]]:
  """
  Validate that tool results pair with the tool calls that requested them.

  Every tool message must reference an id from the closest preceding assistant
  message, and the results for one assistant turn must directly follow it with
  no other message in between.

  Returns:
    Tuple of (is_valid, error_message). error_message is None if valid.
  """
  seen: Set[str] = set()
  pending: Set[str] = set()
  answered: Set[str] = set()
  in_result_block = False

  for i, message in enumerate(messages):
    result_id = get_tool_result_id(message)
    if result_id is not None:
      if result_id in answered:
        return False, f"Duplicate tool result for call '{result_id}' at position {i}"
      if result_id not in pending:
        return False, f"Orphaned tool result '{result_id}' at position {i} (no matching tool call)"
      if not in_result_block:
        return False, f"Tool result '{result_id}' at position {i} is separated from its tool call"
      pending.discard(result_id)
      answered.add(result_id)
      continue

    if pending:
      return False, f"Tool calls without results before position {i}: {sorted(pending)}"

    in_result_block = False
    use_ids = get_tool_use_ids(message)
    for tool_id in use_ids:
      if tool_id in seen:
        return False, f"Tool call id '{tool_id}' is used more than once"
      seen.add(tool_id)
    if use_ids:
      pending = set(use_ids)
      in_result_block = True

  return True, None


class ConversationState:
  """
  Append-only message log plus the context variables of one run.

  Appends are checked against the tool call pairing rules so an invalid
  history can never be produced, and `new_messages` returns the slice added
  after construction.
  """

  def __init__(
    self,
    messages: Iterable[ConversationMessage] = (),
    context_variables: Optional[Mapping[str, Any]] = None,
  ):
    self._messages: List[ConversationMessage] = []
    self._seen_tool_call_ids: Set[str] = set()
    self._pending_tool_call_ids: List[str] = []
    self.context_variables: Dict[str, Any] = dict(context_variables or {})
    for message in messages:
      self.append(message)
    self.initial_length = len(self._messages)

  @property
  def messages(self) -> Tuple[ConversationMessage, ...]:
    return tuple(self._messages)

  @property
  def pending_tool_call_ids(self) -> List[str]:
    return list(self._pending_tool_call_ids)

  @property
  def tool_call_ids(self) -> FrozenSet[str]:
    return frozenset(self._seen_tool_call_ids)

  def __len__(self):
    return len(self._messages)

  def append(self, message: ConversationMessage):
    result_id = get_tool_result_id(message)
    if result_id is not None:
      if result_id not in self._pending_tool_call_ids:
        raise ValueError(f"Tool result '{result_id}' does not answer a pending tool call")
      self._pending_tool_call_ids.remove(result_id)
    else:
      if self._pending_tool_call_ids:
        raise ValueError(
          f"Cannot append a {message.role.value} message while tool calls are unanswered: "
          f"{self._pending_tool_call_ids}"
        )
      for tool_id in get_tool_use_ids(message):
        if tool_id in self._seen_tool_call_ids or tool_id in self._pending_tool_call_ids:
          raise ValueError(f"Tool call id '{tool_id}' is used more than once")
        self._pending_tool_call_ids.append(tool_id)
      self._seen_tool_call_ids.update(self._pending_tool_call_ids)

    self._messages.append(message)

  def extend(self, messages: Iterable[ConversationMessage]):
    for message in messages:
      self.append(message)

  def new_messages(self) -> List[ConversationMessage]:
    return self._messages[self.initial_length :]

  def update_context(self, updates: Optional[Mapping[str, Any]]):
    if updates:
      self.context_variables.update(updates)

  def last_assistant_content(self) -> str:
    for message in reversed(self._messages):
      if isinstance(message, AssistantMessage) and message.content:
        return message.content
    return ""

  def count_tool_messages(self) -> int:
    return sum(1 for m in self._messages if isinstance(m, ToolCallResponseMessage))
