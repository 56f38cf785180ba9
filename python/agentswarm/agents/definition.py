import re

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

DEFAULT_INSTRUCTIONS = "You are a helpful agent."

TOOL_CHOICE_AUTO = "auto"
TOOL_CHOICE_NONE = "none"

Instructions = Union[str, Callable[[Mapping[str, Any]], str]]


@runtime_checkable
class TransferPolicy(Protocol):
  """
  Lets an agent hand control to a successor without calling a tool.

  The loop consults the policy only when a turn ends without tool calls and
  passes the final text of that turn. When `should_transfer_manually` is true
  `next_agent` decides the successor from that text and a read-only view of
  the run's context variables. Returning None from `next_agent` ends the run.

  A policy is shared by every session that runs the agent, so per-run state
  belongs in the arguments, not on the policy.
  """

  def should_transfer_manually(self, content: str) -> bool: ...

  async def next_agent(
    self, content: str, context_variables: Mapping[str, Any]
  ) -> Optional[Union["AgentDefinition", str]]: ...


def validate_agent_name(name: str):
  if not name or not isinstance(name, str):
    raise ValueError("Agent name must be a non-empty string")
  if re.match(r"^[A-Za-z0-9_.-]+$", name) is None:
    raise ValueError(f"Agent name '{name}' may only contain [A-Za-z0-9_.-] characters")


@dataclass(frozen=True)
class AgentDefinition:
  """
  An immutable description of one agent.

  Handoffs never mutate a definition, the loop substitutes another one as the
  active agent.

  Attributes:
    name: Unique name within a swarm
    instructions: A fixed system prompt or a function of the context variables,
      evaluated on every completion request
    model: Model identifier; None uses the gateway's default model
    allowed_tools: Ordered names of the tools this agent may call
    tool_choice: "auto", "none", or the name of a tool the model must call
    description: Short description used when agents are listed to each other
    transfer: Optional policy for handoffs that happen without a tool call
  """

  name: str
  instructions: Instructions = DEFAULT_INSTRUCTIONS
  model: Optional[str] = None
  allowed_tools: Tuple[str, ...] = ()
  tool_choice: str = TOOL_CHOICE_AUTO
  description: str = ""
  transfer: Optional[TransferPolicy] = field(default=None, compare=False, repr=False)

  def __post_init__(self):
    validate_agent_name(self.name)

    # keep the first occurrence of each name, in declaration order
    allowed = tuple(dict.fromkeys(self.allowed_tools))
    object.__setattr__(self, "allowed_tools", allowed)

    if self.tool_choice not in (TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE) and self.tool_choice not in allowed:
      raise ValueError(
        f"Agent '{self.name}' forces tool '{self.tool_choice}' which is not in its allowed tools"
      )

  def resolve_instructions(self, context_variables: Optional[Mapping[str, Any]] = None) -> str:
    if callable(self.instructions):
      return str(self.instructions(dict(context_variables or {})))
    return self.instructions

  def can_call(self, tool_name: str) -> bool:
    return tool_name in self.allowed_tools

  @property
  def forced_tool(self) -> Optional[str]:
    if self.tool_choice in (TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE):
      return None
    return self.tool_choice
