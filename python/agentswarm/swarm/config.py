import os

from typing import Callable, List, Mapping, NotRequired, Optional, Tuple, TypedDict, Union

from ..agents.definition import AgentDefinition, Instructions, TransferPolicy, TOOL_CHOICE_AUTO
from ..models.model import DEFAULT_MODEL
from ..tools.builtin import REMOTE_TOOL_TYPES, RemoteTool
from ..tools.protocol import InvokableTool
from ..tools.tool import as_tool

DEFAULT_MAX_TURNS = 30
DEFAULT_BATCH_CONCURRENCY = 5
DEFAULT_BATCH_SIZE = 10


class AgentConfig(TypedDict):
  """Declarative agent configuration.

  Example:
    {
      "name": "teller",
      "description": "Handles account questions",
      "system_message": "Look up the customer before answering.",
      "allowed_tools": ["lookup_customer", "get_balance"],
    }
  """

  name: str
  description: NotRequired[str]
  system_message: NotRequired[str]
  instructions: NotRequired[Instructions]
  allowed_tools: NotRequired[List[str]]
  model: NotRequired[str]
  tool_choice: NotRequired[str]
  transfer: NotRequired[TransferPolicy]


class ToolFunctionConfig(TypedDict):
  name: str
  description: NotRequired[str]
  parameters: NotRequired[dict]


class ToolConfig(TypedDict):
  """Declarative tool configuration.

  Example:
    {
      "type": "function",
      "function": {
        "name": "get_balance",
        "description": "Get the balance of an account",
        "parameters": {
          "type": "object",
          "properties": {"account_id": {"type": "string"}},
          "required": ["account_id"],
        },
      },
      "handler": get_balance,
    }

  `{"type": "web_search"}` and the other hosted tool types declare a remote tool.
  """

  type: str
  function: NotRequired[ToolFunctionConfig]
  handler: NotRequired[Callable]
  remote: NotRequired[bool]


class SwarmOptions(TypedDict, total=False):
  model: str
  planning_model: str
  client: str
  max_turns: int
  tool_timeout: float
  max_concurrent_sessions: int
  parallel_tool_calls: bool
  auto_plan: bool
  switch_agent: bool
  conversations: bool


class SwarmConfig(TypedDict):
  agents: List[Union[AgentConfig, AgentDefinition]]
  tools: NotRequired[List[Union[ToolConfig, InvokableTool, Callable]]]
  options: NotRequired[SwarmOptions]


def _env_float(name: str) -> Optional[float]:
  value = os.environ.get(name)
  if value is None or value == "":
    return None
  return float(value)


def default_options() -> SwarmOptions:
  options: SwarmOptions = {
    "model": DEFAULT_MODEL,
    "max_turns": int(os.environ.get("AGENTSWARM_MAX_TURNS", DEFAULT_MAX_TURNS)),
    "max_concurrent_sessions": int(os.environ.get("AGENTSWARM_MAX_CONCURRENT_SESSIONS", 0)),
    "parallel_tool_calls": True,
    "auto_plan": False,
    "switch_agent": True,
  }
  tool_timeout = _env_float("AGENTSWARM_TOOL_TIMEOUT")
  if tool_timeout is not None:
    options["tool_timeout"] = tool_timeout
  return options


def compose_instructions(name: str, description: str, system_message: str) -> str:
  if description:
    return f"You are {name}: {description}\n\n{system_message}".strip()
  return system_message or f"You are {name}."


def agent_from_config(config: Union[AgentConfig, AgentDefinition]) -> AgentDefinition:
  if isinstance(config, AgentDefinition):
    return config
  if not isinstance(config, Mapping):
    raise TypeError(f"Agent configuration must be a dict or AgentDefinition, got {type(config).__name__}")
  if "name" not in config:
    raise ValueError("Agent configuration is missing 'name'")

  name = config["name"]
  description = config.get("description", "")
  instructions = config.get("instructions") or compose_instructions(
    name, description, config.get("system_message", "")
  )
  return AgentDefinition(
    name=name,
    instructions=instructions,
    model=config.get("model"),
    allowed_tools=tuple(config.get("allowed_tools", ())),
    tool_choice=config.get("tool_choice", TOOL_CHOICE_AUTO),
    description=description,
    transfer=config.get("transfer"),
  )


def tool_from_config(config: Union[ToolConfig, InvokableTool, Callable]) -> InvokableTool:
  if isinstance(config, Mapping) and config.get("type") in REMOTE_TOOL_TYPES:
    options = {k: v for k, v in config.items() if k != "type"}
    return RemoteTool(config["type"], options)
  return as_tool(config)


def load_config(
  config: SwarmConfig,
) -> Tuple[List[AgentDefinition], List[InvokableTool], SwarmOptions]:
  """
  Build agent definitions, tools and options from a configuration.

  Raises:
    ValueError, TypeError: when the configuration is malformed
  """
  if not isinstance(config, Mapping):
    raise TypeError(f"Swarm configuration must be a dict, got {type(config).__name__}")

  agents = [agent_from_config(a) for a in config.get("agents") or []]
  if not agents:
    raise ValueError("At least one agent must be configured")

  tools = [tool_from_config(t) for t in config.get("tools") or []]

  options = default_options()
  options.update(config.get("options") or {})
  if options.get("max_turns") is not None and options["max_turns"] < 1:
    raise ValueError(f"max_turns must be at least 1, got {options['max_turns']}")
  return agents, tools, options
