from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from .protocol import InvokableTool
from .tool import as_tool
from ..agents.definition import AgentDefinition
from ..logs import get_logger

logger = get_logger("tool")


class ToolRegistry:
  """
  Tools by name, plus the permission check the dispatcher relies on.

  An agent may call the tools listed in its `allowed_tools` and any tool
  registered with `always_allowed=True` (the built-in `switch_agent`).
  """

  def __init__(self, tools: Iterable[Union[InvokableTool, Callable, Mapping]] = ()):
    self._tools: Dict[str, InvokableTool] = {}
    self._always_allowed: List[str] = []
    for tool in tools:
      self.register(tool)

  def register(self, tool: Union[InvokableTool, Callable, Mapping], always_allowed: bool = False) -> InvokableTool:
    tool = as_tool(tool)
    if tool.name in self._tools:
      raise ValueError(f"A tool named '{tool.name}' is already registered")
    self._tools[tool.name] = tool
    if always_allowed:
      self._always_allowed.append(tool.name)
    logger.debug(f"Registered tool '{tool.name}' (remote={tool.remote}, always_allowed={always_allowed})")
    return tool

  def get(self, name: str) -> Optional[InvokableTool]:
    return self._tools.get(name)

  def __contains__(self, name: str) -> bool:
    return name in self._tools

  def __len__(self) -> int:
    return len(self._tools)

  def names(self) -> List[str]:
    return list(self._tools)

  def is_allowed(self, agent: AgentDefinition, tool_name: str) -> bool:
    return agent.can_call(tool_name) or tool_name in self._always_allowed

  def permitted_names(self, agent: AgentDefinition) -> List[str]:
    names = list(agent.allowed_tools)
    names.extend(n for n in self._always_allowed if n not in names)
    return names

  def tools_for(self, agent: AgentDefinition) -> List[InvokableTool]:
    """Registered tools the agent may call, in permission order."""
    return [self._tools[n] for n in self.permitted_names(agent) if n in self._tools]

  async def specs_for(self, agent: AgentDefinition) -> List[dict]:
    return [await tool.spec() for tool in self.tools_for(agent)]

  def missing_tools(self, agent: AgentDefinition) -> List[str]:
    return [n for n in agent.allowed_tools if n not in self._tools]
