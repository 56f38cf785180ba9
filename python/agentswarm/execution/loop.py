from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Union

from ..agents.definition import AgentDefinition
from ..conversation import (
  AssistantMessage,
  ConversationMessage,
  ConversationState,
  ToolCallResponseMessage,
)
from ..errors import ExecutionError, MaxTurnsExceededError
from ..logs import get_logger
from ..models.accumulator import StreamAccumulator
from ..models.completion import Completion, ContentDelta, EndOfTurn, ToolCallDelta
from ..models.gateway import CompletionGateway
from ..tools.builtin import SWITCH_AGENT_TOOL
from ..tools.registry import ToolRegistry
from .dispatcher import DispatchResult, ToolDispatcher, switch_instructions

logger = get_logger("agent")


class State(Enum):
  AWAITING_COMPLETION = "awaiting_completion"
  HAS_TOOL_CALLS = "has_tool_calls"
  NO_TOOL_CALLS = "no_tool_calls"
  MANUAL_TRANSFER_PENDING = "manual_transfer_pending"
  TERMINATED = "terminated"


@dataclass
class TurnStart:
  agent: str
  turn: int


@dataclass
class TurnEnd:
  agent: str
  turn: int
  message: AssistantMessage


@dataclass
class LoopResult:
  """
  Final snapshot of a run.

  Attributes:
    messages: Messages produced by the run, the caller-supplied prefix excluded
    agent: The agent active when the run ended
    context_variables: Context variables after all updates
    turns: Number of completions requested
  """

  messages: List[ConversationMessage]
  agent: AgentDefinition
  context_variables: Dict[str, Any] = field(default_factory=dict)
  turns: int = 0

  @property
  def content(self) -> str:
    for message in reversed(self.messages):
      if isinstance(message, AssistantMessage):
        return message.content
    return ""


StreamItem = Union[TurnStart, ContentDelta, ToolCallDelta, TurnEnd, LoopResult]


class _Run:
  def __init__(self, agent: AgentDefinition, state: ConversationState):
    self.agent = agent
    self.state = state
    self.turns = 0
    self.completion: Optional[Completion] = None
    self.dispatch: Optional[DispatchResult] = None


def _last_output(state: ConversationState) -> str:
  """The most recent tool result or assistant text, ignoring agent switches."""
  for message in reversed(state.messages):
    if isinstance(message, ToolCallResponseMessage) and message.name != SWITCH_AGENT_TOOL:
      return message.content
    if isinstance(message, AssistantMessage) and message.content:
      return message.content
  return ""


class AgentLoop:
  """
  Drives one run: completion, tool dispatch, handoff, repeat.

  `run` returns a `LoopResult`. `run_and_stream` yields a `TurnStart`, the
  raw deltas and a `TurnEnd` for every turn, and the same `LoopResult` as its
  last item. Both share one state machine so they produce identical results
  for identical model responses.

  The number of turns is unbounded unless `max_turns` is set; exceeding it
  raises `MaxTurnsExceededError`.
  """

  def __init__(
    self,
    gateway: CompletionGateway,
    tools: ToolRegistry,
    agents: Optional[Mapping[str, AgentDefinition]] = None,
    max_turns: Optional[int] = None,
    tool_timeout: Optional[float] = None,
    parallel_tool_calls: bool = True,
    max_parallel_tool_calls: Optional[int] = None,
  ):
    if max_turns is not None and max_turns < 1:
      raise ValueError(f"max_turns must be at least 1, got {max_turns}")
    self.gateway = gateway
    self.tools = tools
    self.max_turns = max_turns
    self.parallel_tool_calls = parallel_tool_calls
    self.dispatcher = ToolDispatcher(
      tools,
      agents,
      tool_timeout=tool_timeout,
      parallel=parallel_tool_calls,
      max_parallel=max_parallel_tool_calls,
    )

  async def run(
    self,
    agent: AgentDefinition,
    messages: Iterable[ConversationMessage],
    context_variables: Optional[Mapping[str, Any]] = None,
    max_turns: Optional[int] = None,
    script: Optional[str] = None,
    model: Optional[str] = None,
    correlation_id: Optional[str] = None,
  ) -> LoopResult:
    result = None
    async for item in self._drive(agent, messages, context_variables, max_turns, script, model, correlation_id, False):
      if isinstance(item, LoopResult):
        result = item
    return result

  async def run_and_stream(
    self,
    agent: AgentDefinition,
    messages: Iterable[ConversationMessage],
    context_variables: Optional[Mapping[str, Any]] = None,
    max_turns: Optional[int] = None,
    script: Optional[str] = None,
    model: Optional[str] = None,
    correlation_id: Optional[str] = None,
  ) -> AsyncIterator[StreamItem]:
    async for item in self._drive(agent, messages, context_variables, max_turns, script, model, correlation_id, True):
      yield item

  async def _drive(
    self,
    agent: AgentDefinition,
    messages: Iterable[ConversationMessage],
    context_variables: Optional[Mapping[str, Any]],
    max_turns: Optional[int],
    script: Optional[str],
    model: Optional[str],
    correlation_id: Optional[str],
    stream: bool,
  ) -> AsyncIterator[StreamItem]:
    max_turns = max_turns if max_turns is not None else self.max_turns
    run = _Run(agent, ConversationState(messages, context_variables))
    state = State.AWAITING_COMPLETION
    logger.info(f"Starting run with agent '{agent.name}' (stream={stream}, max_turns={max_turns})")

    while state != State.TERMINATED:
      logger.debug(f"[STATE:{state.name}] agent={run.agent.name}, turn={run.turns}")
      match state:
        case State.AWAITING_COMPLETION:
          if max_turns is not None and run.turns >= max_turns:
            logger.error(f"[STATE:{state.name}] Reached max_turns ({max_turns})")
            raise MaxTurnsExceededError(max_turns, run.agent.name)
          run.turns += 1

          request = await self.gateway.build_request(
            run.agent,
            run.state,
            self.tools,
            stream=stream,
            model=model,
            parallel_tool_calls=self.parallel_tool_calls,
            correlation_id=correlation_id,
          )
          if stream:
            yield TurnStart(run.agent.name, run.turns)
            accumulator = StreamAccumulator()
            async for delta in self.gateway.stream(request):
              accumulator.apply(delta)
              if not isinstance(delta, EndOfTurn):
                yield delta
            run.completion = accumulator.finalize()
          else:
            run.completion = await self.gateway.complete(request)

          run.completion = run.completion.with_unique_tool_call_ids(run.state.tool_call_ids)
          message = run.completion.to_message(run.agent.name)
          try:
            run.state.append(message)
          except ValueError as e:
            raise ExecutionError(
              f"Malformed model response: {e}", {"agent_name": run.agent.name, "turn": run.turns}, cause=e
            ) from e
          if stream:
            yield TurnEnd(run.agent.name, run.turns, message)

          if run.completion.tool_calls:
            logger.debug(f"[STATE:{state.name}] Model requested {len(run.completion.tool_calls)} tool calls")
            state = State.HAS_TOOL_CALLS
          else:
            state = State.NO_TOOL_CALLS

        case State.HAS_TOOL_CALLS:
          state = await self._handle_tool_calls(run, script)

        case State.NO_TOOL_CALLS:
          transfer = run.agent.transfer
          state = State.TERMINATED
          if transfer is not None and transfer.should_transfer_manually(run.completion.content):
            state = State.MANUAL_TRANSFER_PENDING

        case State.MANUAL_TRANSFER_PENDING:
          successor = await run.agent.transfer.next_agent(
            run.completion.content, MappingProxyType(run.state.context_variables)
          )
          if successor is None:
            logger.debug(f"[STATE:{state.name}] Agent '{run.agent.name}' has no successor")
            state = State.TERMINATED
          else:
            previous = run.agent
            run.agent = self.dispatcher.resolve_agent(successor)
            logger.info(f"Agent '{previous.name}' transfers to '{run.agent.name}'")
            state = State.AWAITING_COMPLETION

    logger.info(f"Run finished with agent '{run.agent.name}' after {run.turns} turns")
    yield LoopResult(
      messages=list(run.state.new_messages()),
      agent=run.agent,
      context_variables=dict(run.state.context_variables),
      turns=run.turns,
    )

  async def _handle_tool_calls(self, run: _Run, script: Optional[str]) -> State:
    result = await self.dispatcher.dispatch(run.agent, run.completion.tool_calls, run.state.context_variables)
    run.dispatch = result
    run.state.extend(result.messages)
    run.state.update_context(result.context_variables)

    if result.agent is not None:
      logger.info(f"Active agent changes from '{run.agent.name}' to '{result.agent.name}'")
      run.agent = result.agent
      if result.switch is not None:
        run.state.append(
          switch_instructions(
            run.agent,
            run.state.count_tool_messages(),
            _last_output(run.state),
            script,
            run.state.context_variables,
          )
        )
    return State.AWAITING_COMPLETION
