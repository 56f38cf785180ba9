from typing import Protocol, Sequence

from ..agents.definition import AgentDefinition
from ..tools.registry import ToolRegistry


class Planner(Protocol):
  async def plan(self, goal: str, agents: Sequence[AgentDefinition], tools: ToolRegistry) -> str: ...
