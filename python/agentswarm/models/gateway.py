from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from ..agents.definition import AgentDefinition, TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE
from ..conversation import ConversationState, FunctionToolCall, ToolCall
from ..errors import ExecutionError, ModelError, classify_error
from ..logs import get_logger, DebugContext
from ..tools.registry import ToolRegistry
from .completion import (
  Completion,
  CompletionRequest,
  ContentDelta,
  Delta,
  EndOfTurn,
  ToolCallDelta,
  new_tool_call_id,
)
from .model import DEFAULT_MODEL, Model


def _get(obj, key, default=None):
  if obj is None:
    return default
  if isinstance(obj, Mapping):
    return obj.get(key, default)
  return getattr(obj, key, default)


def tool_choice_param(tool_choice: str) -> Union[str, dict]:
  if tool_choice in (TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE):
    return tool_choice
  return {"type": "function", "function": {"name": tool_choice}}


def normalize_response(response) -> Completion:
  """Convert a chat completions response, object or dict, into a `Completion`."""
  choices = _get(response, "choices") or []
  if not choices:
    raise ExecutionError("Malformed model response: no choices")

  choice = choices[0]
  message = _get(choice, "message")
  if message is None:
    raise ExecutionError("Malformed model response: no message")

  tool_calls: List[ToolCall] = []
  for tc in _get(message, "tool_calls") or []:
    function = _get(tc, "function")
    tool_calls.append(
      ToolCall(
        id=_get(tc, "id") or new_tool_call_id(),
        function=FunctionToolCall(
          name=_get(function, "name") or "unknown",
          arguments=_get(function, "arguments") or "",
        ),
      )
    )
  return Completion(_get(message, "content") or "", tool_calls, _get(choice, "finish_reason"))


def normalize_chunk(chunk) -> List[Delta]:
  """Convert one streamed chunk into zero or more deltas."""
  choices = _get(chunk, "choices") or []
  if not choices:
    return []

  choice = choices[0]
  delta = _get(choice, "delta")
  deltas: List[Delta] = []

  content = _get(delta, "content")
  if content:
    deltas.append(ContentDelta(content))

  for tc in _get(delta, "tool_calls") or []:
    function = _get(tc, "function")
    deltas.append(
      ToolCallDelta(
        index=int(_get(tc, "index") or 0),
        id=_get(tc, "id"),
        name=_get(function, "name"),
        arguments=_get(function, "arguments"),
      )
    )

  finish_reason = _get(choice, "finish_reason")
  if finish_reason:
    deltas.append(EndOfTurn(finish_reason))
  return deltas


class CompletionGateway(DebugContext):
  """
  Turns an agent and a conversation into exactly one completion call.

  Models are resolved by name and created on first use. Tests and callers can
  pass ready-made model objects, anything with a compatible `complete_chat`,
  through `models`. Transport exceptions leave the gateway as typed
  `SwarmError`s.
  """

  def __init__(
    self,
    default_model: str = DEFAULT_MODEL,
    models: Optional[Mapping[str, Any]] = None,
    client: Optional[str] = None,
    **model_kwargs,
  ):
    self.logger = get_logger("model")
    self.default_model = default_model
    self.client = client
    self.model_kwargs = model_kwargs
    self._models: Dict[str, Any] = dict(models or {})

  def model_for(self, name: Optional[str] = None):
    name = name or self.default_model
    model = self._models.get(name)
    if model is None:
      try:
        model = Model(name, client=self.client, **self.model_kwargs)
      except ValueError as e:
        raise ModelError(f"Cannot create model '{name}': {e}", {"model": name}, e) from e
      self._models[name] = model
    return model

  async def build_request(
    self,
    agent: AgentDefinition,
    state: ConversationState,
    tools: ToolRegistry,
    stream: bool = False,
    model: Optional[str] = None,
    parallel_tool_calls: Optional[bool] = None,
    correlation_id: Optional[str] = None,
  ) -> CompletionRequest:
    # instructions are resolved on every request so they see the latest context variables
    specs = await tools.specs_for(agent)
    return CompletionRequest(
      model=model or agent.model or self.default_model,
      system_prompt=agent.resolve_instructions(state.context_variables),
      messages=list(state.messages),
      tools=specs,
      tool_choice=tool_choice_param(agent.tool_choice) if specs else None,
      parallel_tool_calls=parallel_tool_calls if specs else None,
      stream=stream,
      agent_name=agent.name,
      correlation_id=correlation_id,
    )

  async def complete(self, request: CompletionRequest) -> Completion:
    model = self.model_for(request.model)
    with self.debug(f"Requesting completion from '{request.model}'", f"Received completion from '{request.model}'"):
      try:
        response = await model.complete_chat(
          request.wire_messages(),
          stream=False,
          agent_name=request.agent_name,
          conversation=request.correlation_id,
          **request.wire_kwargs(),
        )
      except Exception as e:
        raise classify_error(e, request.model) from e
      return normalize_response(response)

  async def stream(self, request: CompletionRequest) -> AsyncIterator[Delta]:
    """Yield content and tool call deltas, always closed by one `EndOfTurn`."""
    model = self.model_for(request.model)
    finish_reason = None
    try:
      chunks = model.complete_chat(
        request.wire_messages(),
        stream=True,
        agent_name=request.agent_name,
        conversation=request.correlation_id,
        **request.wire_kwargs(),
      )
      async for chunk in chunks:
        for delta in normalize_chunk(chunk):
          if isinstance(delta, EndOfTurn):
            finish_reason = delta.finish_reason
          else:
            yield delta
    except Exception as e:
      raise classify_error(e, request.model) from e
    yield EndOfTurn(finish_reason)

  async def open_conversation(self, model: Optional[str] = None, metadata: Optional[dict] = None) -> Optional[str]:
    opener = getattr(self.model_for(model), "open_conversation", None)
    if opener is None:
      return None
    try:
      return await opener(metadata)
    except Exception as e:
      raise classify_error(e, model or self.default_model) from e

  async def close_conversation(self, conversation_id: Optional[str], model: Optional[str] = None):
    if not conversation_id:
      return
    closer = getattr(self.model_for(model), "close_conversation", None)
    if closer is None:
      return
    try:
      await closer(conversation_id)
    except Exception as e:
      raise classify_error(e, model or self.default_model) from e

  async def aclose(self):
    for name, model in self._models.items():
      closer = getattr(model, "aclose", None)
      if closer is not None:
        self.logger.debug(f"Closing model '{name}'")
        await closer()
