from typing import Optional, Sequence

from ..agents.definition import AgentDefinition
from ..conversation import UserMessage
from ..logs import get_logger, InfoContext
from ..models.completion import CompletionRequest
from ..models.gateway import CompletionGateway
from ..tools.registry import ToolRegistry
from .protocol import Planner

PLANNING_PROMPT = """You write scripts for a team of agents.
Reply with the script only, one step per line, in the form `$N = tool_name(arg: value)`.
A step may use the result of an earlier step as `$N`.

Agents and the tools they can call:
{agents}"""


def describe_agents(agents: Sequence[AgentDefinition], tools: ToolRegistry) -> str:
  lines = []
  for agent in agents:
    names = [t.name for t in tools.tools_for(agent)]
    description = f": {agent.description}" if agent.description else ""
    lines.append(f"- {agent.name}{description} (tools: {', '.join(names) or 'none'})")
  return "\n".join(lines)


class ModelPlanner(Planner, InfoContext):
  """Asks a model for a step by step script that reaches a goal."""

  def __init__(self, gateway: CompletionGateway, model: Optional[str] = None, prompt: str = PLANNING_PROMPT):
    self.logger = get_logger("planner")
    self.gateway = gateway
    self.model = model
    self.prompt = prompt

  async def plan(self, goal: str, agents: Sequence[AgentDefinition], tools: ToolRegistry) -> str:
    request = CompletionRequest(
      model=self.model or self.gateway.default_model,
      system_prompt=self.prompt.format(agents=describe_agents(agents, tools)),
      messages=[UserMessage(goal)],
    )
    with self.info(f"Generating script for goal: {goal!r}", "Generated script"):
      completion = await self.gateway.complete(request)
    script = completion.content.strip()
    self.logger.debug(f"Generated script:\n{script}")
    return script
