from typing import Any, Mapping, Optional, Sequence

from .outcome import AgentSwitch
from .tool import ConfiguredTool, parse_json_arguments

SWITCH_AGENT_TOOL = "switch_agent"

# hosted capabilities the completion service executes itself
REMOTE_TOOL_TYPES = ("web_search", "file_search", "code_interpreter")


class SwitchAgentTool(ConfiguredTool):
  """
  Built-in tool that lets the model move the conversation to another agent.

  It is only registered when a swarm has more than one agent, and every agent
  may call it regardless of its allowed tools.
  """

  def __init__(self, agent_names: Sequence[str]):
    spec = {
      "type": "function",
      "function": {
        "name": SWITCH_AGENT_TOOL,
        "description": (
          "Switch the conversation to another agent. Use it when the next step of the "
          "script belongs to an agent with the right tools."
        ),
        "parameters": {
          "type": "object",
          "properties": {
            "to": {
              "type": "string",
              "enum": list(agent_names),
              "description": "name of the agent that continues the conversation",
            },
          },
          "required": ["to"],
        },
      },
    }
    self.agent_names = list(agent_names)
    super().__init__(spec, self._switch)

  def _switch(self, arguments: Mapping[str, Any]) -> AgentSwitch:
    to_agent = arguments["to"]
    return AgentSwitch(to_agent, f"Switched to agent {to_agent}")


class RemoteTool:
  """A tool descriptor for a capability hosted by the completion service."""

  def __init__(self, name: str, options: Optional[Mapping[str, Any]] = None):
    if name not in REMOTE_TOOL_TYPES:
      raise ValueError(f"Unknown remote tool '{name}', expected one of: {', '.join(REMOTE_TOOL_TYPES)}")
    self.name = name
    self.remote = True
    self.options = dict(options or {})

  def __repr__(self):
    return f"RemoteTool(name={self.name!r})"

  async def spec(self) -> dict:
    return {"type": self.name, **self.options}

  def parse_arguments(self, json_argument: Optional[str]) -> dict:
    return parse_json_arguments(json_argument)

  async def invoke(self, arguments: dict, context_variables: Mapping[str, Any]) -> Any:
    raise RuntimeError(f"Tool '{self.name}' is executed by the completion service")
