import uuid

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..conversation import ConversationMessage, ToolCallResponseMessage, to_dict


def new_session_id() -> str:
  return uuid.uuid4().hex


@dataclass
class Session:
  """
  A resumable conversation bound to its currently active agent.

  Attributes:
    agent_name: The agent that handles the next run
    id: Opaque unique token
    created_at: Creation time, UTC
    messages: History carried from one run to the next
    context_variables: Context variables carried from one run to the next
    node_results: Tool results by tool call id, the values scripts refer to
    correlation_id: Transport-side conversation id when the transport is stateful
    metadata: Free-form caller data
  """

  agent_name: str
  id: str = field(default_factory=new_session_id)
  created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
  messages: List[ConversationMessage] = field(default_factory=list)
  context_variables: Dict[str, Any] = field(default_factory=dict)
  node_results: Dict[str, str] = field(default_factory=dict)
  correlation_id: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)
  runs: int = 0
  running: bool = False
  last_error: Optional[str] = None

  def record_results(self, messages: List[ConversationMessage]):
    for message in messages:
      if isinstance(message, ToolCallResponseMessage):
        self.node_results[message.tool_call_id] = message.content

  def snapshot(self) -> dict:
    return {
      "id": self.id,
      "agent_name": self.agent_name,
      "created_at": self.created_at.isoformat(),
      "runs": self.runs,
      "running": self.running,
      "messages": [to_dict(m) for m in self.messages],
      "context_variables": dict(self.context_variables),
      "node_results": dict(self.node_results),
      "correlation_id": self.correlation_id,
      "metadata": dict(self.metadata),
      "last_error": self.last_error,
    }
