"""
The session manager.

A `Swarm` owns the agents, the tool registry, the completion gateway and the
open sessions of one configuration. Nothing is global: tests and processes
construct as many swarms as they need, each with an explicit `init` and
`shutdown`.

Example:
  async with Swarm(config) as swarm:
    session = await swarm.create_session("teller")
    answer = await swarm.run_session(session.id, "What is the balance of account 42?")
    await swarm.end_session(session.id)
"""

import asyncio

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional

from ..agents.definition import AgentDefinition
from ..conversation import ConversationMessage, UserMessage
from ..errors import (
  AgentError,
  ConcurrencyError,
  InitializationError,
  InvalidFlowError,
  SwarmError,
)
from ..execution.loop import AgentLoop, LoopResult, StreamItem
from ..gather import gather_in_windows
from ..logs import get_logger, InfoContext
from ..models.gateway import CompletionGateway
from ..planning.planner import ModelPlanner
from ..planning.protocol import Planner
from ..tools.builtin import SWITCH_AGENT_TOOL, SwitchAgentTool
from ..tools.registry import ToolRegistry
from .config import (
  DEFAULT_BATCH_CONCURRENCY,
  DEFAULT_BATCH_SIZE,
  SwarmConfig,
  SwarmOptions,
  load_config,
)
from .session import Session, new_session_id

ProgressCallback = Callable[[int, int], Optional[Awaitable[None]]]


def compose_goal(goal: str, script: Optional[str] = None) -> str:
  if script:
    return f"{goal}\n\nExecute this script:\n{script}"
  return goal


class Swarm(InfoContext):
  def __init__(
    self,
    config: Optional[SwarmConfig] = None,
    gateway: Optional[CompletionGateway] = None,
    planner: Optional[Planner] = None,
  ):
    self.logger = get_logger("swarm")
    self.session_logger = get_logger("session")
    self.agents: Dict[str, AgentDefinition] = {}
    self.tools: Optional[ToolRegistry] = None
    self.options: SwarmOptions = {}
    self.gateway: Optional[CompletionGateway] = gateway
    self.planner: Optional[Planner] = planner
    self.loop: Optional[AgentLoop] = None
    self.initialized = False
    self._sessions: Dict[str, Session] = {}
    if config is not None:
      self.init(config)

  async def __aenter__(self) -> "Swarm":
    if not self.initialized:
      raise InitializationError("Swarm must be initialized with a configuration before use")
    return self

  async def __aexit__(self, exc_type, exc, tb):
    await self.shutdown()

  def init(self, config: SwarmConfig) -> "Swarm":
    """
    Load agents and tools and prepare the gateway.

    Raises:
      InitializationError: when the configuration is invalid or the swarm is already initialized
    """
    if self.initialized:
      raise InitializationError("Swarm is already initialized")

    try:
      agents, tools, options = load_config(config)
    except (ValueError, TypeError, KeyError) as e:
      raise InitializationError(f"Invalid swarm configuration: {e}", cause=e) from e

    registry = ToolRegistry()
    try:
      for tool in tools:
        registry.register(tool)
      if len(agents) > 1 and options.get("switch_agent", True):
        registry.register(SwitchAgentTool([a.name for a in agents]), always_allowed=True)
    except ValueError as e:
      raise InitializationError(str(e), cause=e) from e

    by_name: Dict[str, AgentDefinition] = {}
    for agent in agents:
      if agent.name in by_name:
        raise InitializationError(f"Duplicate agent name '{agent.name}'", {"agent_name": agent.name})
      missing = registry.missing_tools(agent)
      if missing:
        raise InitializationError(
          f"Agent '{agent.name}' references unknown tools: {', '.join(missing)}",
          {"agent_name": agent.name},
        )
      by_name[agent.name] = agent

    self.agents = by_name
    self.tools = registry
    self.options = options
    if self.gateway is None:
      model_kwargs = {"conversations": True} if options.get("conversations") else {}
      self.gateway = CompletionGateway(default_model=options["model"], client=options.get("client"), **model_kwargs)
    if self.planner is None:
      self.planner = ModelPlanner(self.gateway, options.get("planning_model"))
    self.loop = AgentLoop(
      self.gateway,
      registry,
      self.agents,
      max_turns=options.get("max_turns"),
      tool_timeout=options.get("tool_timeout"),
      parallel_tool_calls=options.get("parallel_tool_calls", True),
    )
    self.initialized = True

    switch_note = f", '{SWITCH_AGENT_TOOL}' enabled" if SWITCH_AGENT_TOOL in registry else ""
    self.logger.info(f"Initialized swarm with {len(self.agents)} agents and {len(registry)} tools{switch_note}")
    return self

  async def shutdown(self):
    """End every open session and close the model clients."""
    for session_id in list(self._sessions):
      await self._end_session_quietly(session_id)
    if self.gateway is not None:
      await self.gateway.aclose()
    self.initialized = False
    self.logger.info("Swarm shut down")

  def _require_initialized(self):
    if not self.initialized:
      raise InitializationError("Swarm is not initialized")

  def agent(self, name: str) -> AgentDefinition:
    self._require_initialized()
    agent = self.agents.get(name)
    if agent is None:
      raise AgentError(f"Agent '{name}' not found", agent_name=name, context={"known_agents": ", ".join(self.agents)})
    return agent

  def session(self, session_id: str) -> Session:
    session = self._sessions.get(session_id)
    if session is None:
      raise InvalidFlowError(session_id)
    return session

  def active_sessions(self) -> List[str]:
    return list(self._sessions)

  async def create_session(
    self,
    agent_name: str,
    metadata: Optional[Mapping[str, Any]] = None,
    context_variables: Optional[Mapping[str, Any]] = None,
    session_id: Optional[str] = None,
  ) -> Session:
    agent = self.agent(agent_name)

    limit = self.options.get("max_concurrent_sessions") or 0
    if limit and len(self._sessions) >= limit:
      raise ConcurrencyError(f"Too many open sessions ({len(self._sessions)})", {"max_concurrent_sessions": limit})

    session_id = session_id or new_session_id()
    if session_id in self._sessions:
      raise InvalidFlowError(session_id, f"Session '{session_id}' already exists")

    correlation_id = await self.gateway.open_conversation(agent.model, {"session": session_id})
    session = Session(
      agent_name=agent.name,
      id=session_id,
      context_variables=dict(context_variables or {}),
      correlation_id=correlation_id,
      metadata=dict(metadata or {}),
    )
    self._sessions[session.id] = session
    self.session_logger.info(f"Created session '{session.id}' with agent '{agent.name}'")
    return session

  async def run_session(
    self,
    session_id: str,
    goal: str,
    script: Optional[str] = None,
    continue_from_previous: bool = True,
    context_variables: Optional[Mapping[str, Any]] = None,
  ) -> str:
    """
    Run the session's active agent on a goal and return the final answer.

    :param goal: The goal, sent as a user message
    :param script: Optional step by step script appended to the goal
    :param continue_from_previous: Resume from the session's history instead of starting fresh
    :param context_variables: Updates merged into the session's context variables
    """
    result = await self._run(session_id, goal, script, continue_from_previous, context_variables)
    return result.content

  async def run_session_stream(
    self,
    session_id: str,
    goal: str,
    script: Optional[str] = None,
    continue_from_previous: bool = True,
    context_variables: Optional[Mapping[str, Any]] = None,
  ) -> AsyncIterator[StreamItem]:
    session, messages, context, agent, script = await self._prepare(
      session_id, goal, script, continue_from_previous, context_variables
    )
    try:
      async for item in self.loop.run_and_stream(
        agent, messages, context, script=script, correlation_id=session.correlation_id
      ):
        if isinstance(item, LoopResult):
          self._fold(session, messages, item)
        yield item
    except Exception as e:
      session.last_error = str(e)
      raise
    finally:
      session.running = False

  async def _run(
    self,
    session_id: str,
    goal: str,
    script: Optional[str],
    continue_from_previous: bool,
    context_variables: Optional[Mapping[str, Any]],
  ) -> LoopResult:
    session, messages, context, agent, script = await self._prepare(
      session_id, goal, script, continue_from_previous, context_variables
    )
    try:
      with self.info(f"Running session '{session.id}' with agent '{agent.name}'", f"Finished session run '{session.id}'"):
        result = await self.loop.run(agent, messages, context, script=script, correlation_id=session.correlation_id)
    except Exception as e:
      session.last_error = str(e)
      raise
    finally:
      session.running = False
    self._fold(session, messages, result)
    return result

  async def _prepare(
    self,
    session_id: str,
    goal: str,
    script: Optional[str],
    continue_from_previous: bool,
    context_variables: Optional[Mapping[str, Any]],
  ):
    self._require_initialized()
    session = self.session(session_id)
    if session.running:
      raise ConcurrencyError(f"Session '{session_id}' is already running", {"session_id": session_id})
    agent = self.agent(session.agent_name)
    session.running = True
    session.last_error = None

    if script is None and self.options.get("auto_plan"):
      try:
        script = await self.generate_script(goal)
      except Exception as e:
        session.running = False
        session.last_error = str(e)
        raise

    history: List[ConversationMessage] = list(session.messages) if continue_from_previous else []
    messages = history + [UserMessage(compose_goal(goal, script))]
    context = {**session.context_variables, **(context_variables or {})}
    return session, messages, context, agent, script

  def _fold(self, session: Session, messages: List[ConversationMessage], result: LoopResult):
    session.messages = list(messages) + list(result.messages)
    session.context_variables = dict(result.context_variables)
    session.agent_name = result.agent.name
    session.record_results(result.messages)
    session.runs += 1

  async def end_session(self, session_id: str):
    """Forget the session and release its transport-side conversation."""
    session = self._sessions.pop(session_id, None)
    if session is None:
      raise InvalidFlowError(session_id)
    agent = self.agents.get(session.agent_name)
    await self.gateway.close_conversation(session.correlation_id, agent.model if agent else None)
    self.session_logger.info(f"Ended session '{session_id}'")

  def get_status(self, session_id: str) -> dict:
    return self.session(session_id).snapshot()

  async def run_once(
    self,
    agent_name: str,
    goal: str,
    script: Optional[str] = None,
    context_variables: Optional[Mapping[str, Any]] = None,
  ) -> str:
    result = await self._run_once(agent_name, goal, script, context_variables)
    return result.content

  async def _run_once(
    self,
    agent_name: str,
    goal: str,
    script: Optional[str] = None,
    context_variables: Optional[Mapping[str, Any]] = None,
    session_id: Optional[str] = None,
  ) -> LoopResult:
    session = await self.create_session(agent_name, context_variables=context_variables, session_id=session_id)
    try:
      return await self._run(session.id, goal, script, True, None)
    finally:
      await self._end_session_quietly(session.id)

  async def _end_session_quietly(self, session_id: str):
    try:
      await self.end_session(session_id)
    except Exception as e:
      # a conversation that cannot be released leaks, the run result stands
      self.session_logger.warning(f"Failed to end session '{session_id}': {type(e).__name__}: {e}")

  async def run_batch(
    self,
    runs: List[Mapping[str, Any]],
    concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_progress: Optional[ProgressCallback] = None,
  ) -> List[dict]:
    """
    Run independent sessions, at most `concurrency` at a time.

    Each run is `{"goal": ..., "agent_name"?: ..., "script"?: ..., "id"?: ...}`;
    the first configured agent is used when no agent is named. Runs are taken
    `batch_size` at a time and every batch is processed in windows of
    `concurrency` sessions; a window must drain before the next one starts.

    Returns one entry per run, in input order: `{"id", "result": {"content", "agent"}}`
    on success and `{"id", "result": {}, "error", "kind"}` on failure.
    """
    self._require_initialized()
    if concurrency < 1 or batch_size < 1:
      raise ValueError("concurrency and batch_size must be at least 1")

    default_agent = next(iter(self.agents))
    total = len(runs)
    results: List[dict] = []

    def runner(run: Mapping[str, Any]):
      run_id = run.get("id") or new_session_id()

      async def execute() -> dict:
        try:
          result = await self._run_once(
            run.get("agent_name") or default_agent,
            run["goal"],
            run.get("script"),
            run.get("context_variables"),
            session_id=run_id,
          )
          return {"id": run_id, "result": {"content": result.content, "agent": result.agent.name}}
        except Exception as e:
          self.logger.warning(f"Batch run failed: {type(e).__name__}: {e}", extra={"session_id": run_id})
          kind = e.kind.value if isinstance(e, SwarmError) else type(e).__name__
          return {"id": run_id, "result": {}, "error": str(e), "kind": kind}

      return execute

    async def progress(done_in_batch: int):
      if on_progress is not None:
        r = on_progress(len(results) + done_in_batch, total)
        if asyncio.iscoroutine(r):
          await r

    for start in range(0, total, batch_size):
      batch = runs[start : start + batch_size]
      results.extend(await gather_in_windows([runner(run) for run in batch], concurrency, progress))

    return results

  async def generate_script(self, goal: str) -> str:
    """Ask the planner for a step by step script; the text is used as-is."""
    self._require_initialized()
    return await self.planner.plan(goal, list(self.agents.values()), self.tools)
