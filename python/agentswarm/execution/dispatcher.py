import asyncio

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..agents.definition import AgentDefinition
from ..conversation import ToolCall, ToolCallResponseMessage, UserMessage
from ..errors import AgentError, UnauthorizedToolError
from ..gather import gather
from ..logs import get_logger, InfoContext
from ..tools.outcome import AgentSwitch, HandoffResult, ToolOutcome, Value, to_outcome
from ..tools.registry import ToolRegistry
from ..tools.tool import describe_failure

logger = get_logger("tool")

AGENT_SWITCHING_INSTRUCTIONS = """Now you are acting as {agent} agent. \
You have just completed step {step} in the script for agent switching.
Here is the last output from the previous agent: {last_output}
Here are the instructions for {agent}: {instructions}
Here is the original script: {script}"""


def not_found_message(tool_name: str) -> str:
  return f"Error: Tool {tool_name} not found."


def remote_message(tool_name: str) -> str:
  return f"Tool {tool_name} is executed by the completion service, its result is part of the next response."


def switch_instructions(
  agent: AgentDefinition,
  step: int,
  last_output: str,
  script: Optional[str],
  context_variables: Optional[Mapping[str, Any]] = None,
) -> UserMessage:
  return UserMessage(
    AGENT_SWITCHING_INSTRUCTIONS.format(
      agent=agent.name,
      step=step,
      last_output=last_output or "(none)",
      instructions=agent.resolve_instructions(context_variables),
      script=script or "(none)",
    )
  )


@dataclass
class DispatchResult:
  """
  Outcome of one batch of tool calls.

  Attributes:
    messages: One tool message per call, in request order
    agent: The agent that becomes active on the next turn, None to keep the current one
    context_variables: Updates declared by the handlers, merged in request order
    switch: The agent switch requested through `switch_agent`, if any
  """

  messages: List[ToolCallResponseMessage] = field(default_factory=list)
  agent: Optional[AgentDefinition] = None
  context_variables: Dict[str, Any] = field(default_factory=dict)
  switch: Optional[AgentSwitch] = None
  outcomes: List[Optional[ToolOutcome]] = field(default_factory=list)


class ToolDispatcher(InfoContext):
  """
  Executes the tool calls of one assistant turn.

  Authorization is checked for the whole batch before anything runs: a call to
  a registered tool the agent may not use aborts the turn with an
  `UnauthorizedToolError`. Unknown tools, malformed arguments, handler
  exceptions and timeouts become error messages so the model can adapt.
  """

  def __init__(
    self,
    tools: ToolRegistry,
    agents: Optional[Mapping[str, AgentDefinition]] = None,
    tool_timeout: Optional[float] = None,
    parallel: bool = True,
    max_parallel: Optional[int] = None,
  ):
    self.logger = logger
    self.tools = tools
    self.agents = agents if agents is not None else {}
    self.tool_timeout = tool_timeout
    self.parallel = parallel
    self.max_parallel = max_parallel

  def resolve_agent(self, agent: Union[AgentDefinition, str]) -> AgentDefinition:
    if isinstance(agent, AgentDefinition):
      return agent
    resolved = self.agents.get(agent)
    if resolved is None:
      raise AgentError(f"Cannot hand off to unknown agent '{agent}'", agent_name=agent)
    return resolved

  def authorize(self, agent: AgentDefinition, tool_calls: Sequence[ToolCall]):
    for call in tool_calls:
      if call.name in self.tools and not self.tools.is_allowed(agent, call.name):
        self.logger.error(f"Agent '{agent.name}' requested unauthorized tool '{call.name}'")
        raise UnauthorizedToolError(call.name, agent.name, self.tools.permitted_names(agent))

  async def dispatch(
    self,
    agent: AgentDefinition,
    tool_calls: Sequence[ToolCall],
    context_variables: Optional[Mapping[str, Any]] = None,
  ) -> DispatchResult:
    self.authorize(agent, tool_calls)

    # handlers read the context, updates only flow back through their results
    context = MappingProxyType(dict(context_variables or {}))

    self.logger.debug(f"Dispatching {len(tool_calls)} tool calls for agent '{agent.name}'")
    if self.parallel and len(tool_calls) > 1:
      executed = await gather(*[self._execute(call, context) for call in tool_calls], batch_size=self.max_parallel)
    else:
      executed = [await self._execute(call, context) for call in tool_calls]

    return self._fold(executed)

  async def _execute(
    self, call: ToolCall, context_variables: Mapping[str, Any]
  ) -> Tuple[ToolCallResponseMessage, Optional[ToolOutcome]]:
    def reply(content: str) -> ToolCallResponseMessage:
      return ToolCallResponseMessage(tool_call_id=call.id, name=call.name, content=content)

    tool = self.tools.get(call.name)
    if tool is None:
      self.logger.warning(f"Tool '{call.name}' not found")
      return reply(not_found_message(call.name)), None

    if tool.remote:
      self.logger.debug(f"Tool '{call.name}' runs remotely, nothing to execute")
      return reply(remote_message(call.name)), None

    try:
      arguments = tool.parse_arguments(call.arguments)
    except (ValueError, TypeError) as e:
      self.logger.warning(f"Invalid arguments for tool '{call.name}': {e}")
      return reply(describe_failure(e)), None

    try:
      if self.tool_timeout:
        raw = await asyncio.wait_for(tool.invoke(arguments, context_variables), self.tool_timeout)
      else:
        raw = await tool.invoke(arguments, context_variables)
    except asyncio.TimeoutError:
      self.logger.error(f"Tool '{call.name}' timed out after {self.tool_timeout}s")
      return reply(f"Tool execution failed: TimeoutError: tool '{call.name}' did not finish within {self.tool_timeout}s"), None
    except Exception as e:
      self.logger.error(f"Tool '{call.name}' execution failed: {type(e).__name__}: {e}")
      return reply(describe_failure(e)), None

    outcome = to_outcome(raw)
    match outcome:
      case Value(content=content):
        return reply(content), outcome
      case HandoffResult(value=value):
        return reply(value), outcome
      case AgentSwitch(to_agent=to_agent, visible_message=visible_message):
        return reply(visible_message or f"Switched to agent {to_agent}"), outcome

  def _fold(self, executed: List[Tuple[ToolCallResponseMessage, Optional[ToolOutcome]]]) -> DispatchResult:
    result = DispatchResult()
    for message, outcome in executed:
      result.messages.append(message)
      result.outcomes.append(outcome)
      match outcome:
        case Value(context_variables=updates):
          result.context_variables.update(updates)
        case HandoffResult():
          result.context_variables.update(outcome.context_variables)
          result.agent = self.resolve_agent(outcome.agent)
          self.logger.info(f"Tool '{message.name}' hands off to agent '{result.agent.name}'")
        case AgentSwitch(to_agent=to_agent):
          result.agent = self.resolve_agent(to_agent)
          result.switch = outcome
          self.logger.info(f"Switching to agent '{to_agent}'")
    return result
