from .dispatcher import (
  ToolDispatcher,
  DispatchResult,
  AGENT_SWITCHING_INSTRUCTIONS,
  switch_instructions,
  not_found_message,
)
from .loop import AgentLoop, LoopResult, State, TurnStart, TurnEnd

__all__ = [
  "AgentLoop",
  "LoopResult",
  "State",
  "TurnStart",
  "TurnEnd",
  "ToolDispatcher",
  "DispatchResult",
  "AGENT_SWITCHING_INSTRUCTIONS",
  "switch_instructions",
  "not_found_message",
]
