"""
Typed errors raised by the swarm.

Every error carries an `ErrorKind` tag so callers can decide on a retry policy
without inspecting transport specific exception types. Messages are built from
the failure, the context it happened in, and a suggestion for resolution.

Example:
  try:
    await swarm.run_session(session.id, "book a table")
  except RateLimitError:
    await asyncio.sleep(5)
  except SwarmError as e:
    print(f"{e.kind.value}: {e}")
"""

from enum import Enum
from typing import Any, Dict, Optional

import openai


class ErrorKind(Enum):
  INITIALIZATION_ERROR = "INITIALIZATION_ERROR"
  AGENT_ERROR = "AGENT_ERROR"
  TOOL_ERROR = "TOOL_ERROR"
  EXECUTION_ERROR = "EXECUTION_ERROR"
  INVALID_FLOW = "INVALID_FLOW"
  RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
  AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
  MODEL_ERROR = "MODEL_ERROR"
  CONCURRENCY_ERROR = "CONCURRENCY_ERROR"


class SwarmError(Exception):
  """
  Base class for all swarm errors.

  Attributes:
    kind: The error kind tag
    message: Short description of the failure
    context: Additional context about the failure, e.g. agent or tool names
    cause: The underlying exception, when one exists
  """

  kind: ErrorKind = ErrorKind.EXECUTION_ERROR

  def __init__(
    self,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    cause: Optional[BaseException] = None,
  ):
    self.message = message
    self.context = context or {}
    self.cause = cause
    super().__init__(self._build_message())

  def _build_message(self) -> str:
    parts = [self.message.rstrip(".") + "."]

    context_parts = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
    if context_parts:
      parts.append(f"Context: {', '.join(context_parts)}.")

    suggestion = self._get_suggestion()
    if suggestion:
      parts.append(suggestion)

    return " ".join(parts)

  def _get_suggestion(self) -> Optional[str]:
    return None

  def to_dict(self) -> dict:
    return {"kind": self.kind.value, "message": self.message, "context": self.context}


class InitializationError(SwarmError):
  """Raised when the swarm configuration is invalid or setup fails before any turn runs."""

  kind = ErrorKind.INITIALIZATION_ERROR

  def _get_suggestion(self) -> Optional[str]:
    return "Check the agent and tool configuration."


class AgentError(SwarmError):
  """Raised when an unknown agent is referenced at session creation or handoff time."""

  kind = ErrorKind.AGENT_ERROR

  def __init__(self, message: str, agent_name: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
    ctx = {"agent_name": agent_name, **(context or {})}
    self.agent_name = agent_name
    super().__init__(message, ctx)


class ToolError(SwarmError):
  kind = ErrorKind.TOOL_ERROR

  def __init__(
    self,
    message: str,
    tool_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    cause: Optional[BaseException] = None,
  ):
    ctx = {"tool_name": tool_name, **(context or {})}
    self.tool_name = tool_name
    super().__init__(message, ctx, cause)


class UnauthorizedToolError(ToolError):
  """
  Raised when the active agent requests a tool outside its allowed tools.

  This aborts the whole turn: it indicates either a configuration bug or a
  prompt injection attempt.
  """

  def __init__(self, tool_name: str, agent_name: str, allowed_tools=()):
    self.agent_name = agent_name
    super().__init__(
      f"Agent '{agent_name}' is not allowed to call tool '{tool_name}'",
      tool_name=tool_name,
      context={"agent_name": agent_name, "allowed_tools": ", ".join(allowed_tools) or "none"},
    )

  def _get_suggestion(self) -> Optional[str]:
    return "Add the tool to the agent's allowed_tools if the call is legitimate."


class ExecutionError(SwarmError):
  kind = ErrorKind.EXECUTION_ERROR


class MaxTurnsExceededError(ExecutionError):
  def __init__(self, max_turns: int, agent_name: Optional[str] = None):
    self.max_turns = max_turns
    super().__init__(
      f"Maximum number of turns reached ({max_turns})",
      {"agent_name": agent_name},
    )

  def _get_suggestion(self) -> Optional[str]:
    return "Consider increasing max_turns or checking whether the agent is stuck in a tool loop."


class RateLimitError(ExecutionError):
  kind = ErrorKind.RATE_LIMIT_ERROR

  def _get_suggestion(self) -> Optional[str]:
    return "Retry with backoff."


class AuthenticationError(ExecutionError):
  kind = ErrorKind.AUTHENTICATION_ERROR

  def _get_suggestion(self) -> Optional[str]:
    return "Check the API key configured for the model provider."


class ModelError(ExecutionError):
  kind = ErrorKind.MODEL_ERROR

  def _get_suggestion(self) -> Optional[str]:
    return "Check that the model name is correct and available to your account."


class InvalidFlowError(SwarmError):
  """Raised when a session id does not exist or the session has already ended."""

  kind = ErrorKind.INVALID_FLOW

  def __init__(self, session_id: str, message: Optional[str] = None):
    self.session_id = session_id
    super().__init__(message or f"Session '{session_id}' not found", {"session_id": session_id})


class ConcurrencyError(SwarmError):
  kind = ErrorKind.CONCURRENCY_ERROR

  def _get_suggestion(self) -> Optional[str]:
    return "End idle sessions or raise max_concurrent_sessions."


def status_code_of(e: BaseException) -> Optional[int]:
  status = getattr(e, "status_code", None)
  if status is None:
    response = getattr(e, "response", None)
    status = getattr(response, "status_code", None)
  try:
    return int(status) if status is not None else None
  except (TypeError, ValueError):
    return None


def classify_error(e: BaseException, model: Optional[str] = None) -> SwarmError:
  """
  Convert a transport exception into a typed `SwarmError`.

  litellm exceptions subclass the openai ones, so checking the openai classes
  covers both clients. Other exceptions are classified by their status code.
  """
  if isinstance(e, SwarmError):
    return e

  context = {"model": model}
  message = str(e) or type(e).__name__
  status = status_code_of(e)

  if isinstance(e, openai.RateLimitError) or status == 429:
    return RateLimitError(f"Rate limit exceeded: {message}", context, e)
  if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)) or status in (401, 403):
    return AuthenticationError(f"Authentication failed: {message}", context, e)
  if (isinstance(e, (openai.NotFoundError, openai.BadRequestError)) or status in (400, 404)) and (
    "model" in message.lower()
  ):
    return ModelError(f"Model error: {message}", context, e)
  return ExecutionError(f"API request failed: {message}", context, e)
