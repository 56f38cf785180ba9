"""
What a tool call turned into.

Handlers may return a plain value, a `Result`, an `AgentDefinition` or an
`AgentSwitch`. `to_outcome` folds all of these into the `ToolOutcome` union,
and the dispatcher branches on the outcome's `kind`.
"""

import json

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union

from ..agents.definition import AgentDefinition

AGENT_SWITCH_TYPE = "AGENT_SWITCH"


class OutcomeKind(Enum):
  VALUE = "value"
  HANDOFF = "handoff"
  AGENT_SWITCH = "agent_switch"


@dataclass
class Result:
  """
  Structured handler result.

  Attributes:
    value: Content of the tool message
    agent: Agent, or agent name, that becomes active on the next turn
    context_variables: Updates merged into the run's context variables
  """

  value: Any = ""
  agent: Optional[Union[AgentDefinition, str]] = None
  context_variables: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Value:
  content: str
  context_variables: Dict[str, Any] = field(default_factory=dict)
  kind: ClassVar[OutcomeKind] = OutcomeKind.VALUE


@dataclass(frozen=True)
class HandoffResult:
  value: str
  agent: Union[AgentDefinition, str]
  context_variables: Dict[str, Any] = field(default_factory=dict)
  kind: ClassVar[OutcomeKind] = OutcomeKind.HANDOFF

  @property
  def agent_name(self) -> str:
    return self.agent.name if isinstance(self.agent, AgentDefinition) else self.agent


@dataclass(frozen=True)
class AgentSwitch:
  to_agent: str
  visible_message: str = ""
  kind: ClassVar[OutcomeKind] = OutcomeKind.AGENT_SWITCH


ToolOutcome = Union[Value, HandoffResult, AgentSwitch]


def stringify(value: Any) -> str:
  if value is None:
    return ""
  if isinstance(value, str):
    return value
  if isinstance(value, (dict, list)):
    try:
      return json.dumps(value)
    except (TypeError, ValueError):
      return str(value)
  return str(value)


def to_outcome(raw: Any) -> ToolOutcome:
  match raw:
    case Value() | HandoffResult() | AgentSwitch():
      return raw
    case Result(agent=None):
      return Value(stringify(raw.value), dict(raw.context_variables))
    case Result():
      agent_name = raw.agent.name if isinstance(raw.agent, AgentDefinition) else raw.agent
      value = stringify(raw.value) or json.dumps({"assistant": agent_name})
      return HandoffResult(value, raw.agent, dict(raw.context_variables))
    case AgentDefinition():
      return HandoffResult(json.dumps({"assistant": raw.name}), raw)
    case {"type": "AGENT_SWITCH", "to": str(to_agent)}:
      return AgentSwitch(to_agent, stringify(raw.get("message")))
    case _:
      return Value(stringify(raw))
