import os
from typing import List, Optional

import litellm

from ...logs import get_logger, InfoContext, DebugContext

# let litellm adapt requests to providers that reject some parameters
litellm.drop_params = True

# provider prefixes that litellm expects, for bare model aliases
PROVIDER_PREFIXES = {
  "gpt-": "openai",
  "o1": "openai",
  "o3": "openai",
  "o4": "openai",
  "claude-": "anthropic",
  "gemini-": "gemini",
  "llama": "ollama_chat",
}


def resolve_model_name(name: str) -> str:
  """Resolve a bare model alias such as 'claude-sonnet-4' to 'anthropic/claude-sonnet-4'."""
  if "/" in name:
    return name
  explicit_provider = os.environ.get("AGENTSWARM_MODEL_PROVIDER")
  if explicit_provider:
    return f"{explicit_provider}/{name}"
  for prefix, provider in PROVIDER_PREFIXES.items():
    if name.startswith(prefix):
      return f"{provider}/{name}"
  return name


def prepare_llm_call(messages: List[dict], defaults: dict, **kwargs):
  # parameters provided in kwargs override the client defaults
  kwargs = {**defaults, **kwargs}

  # an empty tools list is sometimes read as "please hallucinate tools"
  if "tools" in kwargs and not kwargs["tools"]:
    del kwargs["tools"]
  if "tools" not in kwargs:
    kwargs.pop("tool_choice", None)
    kwargs.pop("parallel_tool_calls", None)

  # system and user messages without content are rejected by several providers
  messages = [m for m in messages if m.get("content") or m.get("role") in ("assistant", "tool")]
  return messages, kwargs


class LiteLLMClient(InfoContext, DebugContext):
  """Stateless client that reaches any provider litellm supports."""

  def __init__(self, name: str, request_timeout: float = 120.0, **kwargs):
    self.logger = get_logger("model")
    self.original_name = name
    self.name = resolve_model_name(name)
    self.logger.debug(f"The resolved model name is '{self.name}'")
    self.kwargs = kwargs
    self.kwargs.setdefault("timeout", request_timeout)

    api_base = os.environ.get("LITELLM_PROXY_API_BASE")
    if api_base and self.name.startswith("litellm_proxy/"):
      self.kwargs.setdefault("api_base", api_base)
      api_key = os.environ.get("LITELLM_PROXY_API_KEY")
      if api_key:
        self.kwargs.setdefault("api_key", api_key)

  def complete_chat(
    self,
    messages: List[dict],
    stream: bool = False,
    agent_name: Optional[str] = None,
    conversation: Optional[str] = None,
    **kwargs,
  ):
    """
    Send a chat completion request to the model.

    :param messages: Wire format messages, system prompt included
    :param stream: When True an async iterator of chunks is returned, otherwise an awaitable response
    :param agent_name: Optional agent name for log correlation
    :param conversation: Optional conversation identifier for log correlation
    :param kwargs: Additional parameters such as tools, tool_choice or temperature
    """
    self.logger.info(f"Processing {len(messages)} messages with model '{self.original_name}' (agent={agent_name})")
    self.logger.debug(f"Sending the following messages to the model: {messages} (stream={stream})")

    messages, kwargs = prepare_llm_call(messages, self.kwargs, **kwargs)

    if stream:
      return self._complete_chat_stream(messages, conversation=conversation, **kwargs)
    return self._complete_chat(messages, conversation=conversation, **kwargs)

  async def _complete_chat(self, messages: List[dict], conversation: Optional[str] = None, **kwargs):
    response = await litellm.acompletion(model=self.name, messages=messages, stream=False, **kwargs)
    self.logger.debug(f"Received response for conversation '{conversation}': {response}")
    return response

  async def _complete_chat_stream(self, messages: List[dict], conversation: Optional[str] = None, **kwargs):
    chunks = await litellm.acompletion(model=self.name, messages=messages, stream=True, **kwargs)
    count = 0
    async for chunk in chunks:
      count += 1
      yield chunk
    self.logger.debug(f"Stream for conversation '{conversation}' finished after {count} chunks")

  async def aclose(self):
    pass
