import os
from typing import List, Optional

from ..logs import get_logger, InfoContext, DebugContext
from .clients.litellm_client import LiteLLMClient
from .clients.openai_client import OpenAIClient

DEFAULT_MODEL = os.environ.get("AGENTSWARM_DEFAULT_MODEL", "gpt-4o")

MODEL_CLIENTS = {
  "litellm": LiteLLMClient,
  "openai": OpenAIClient,
}


class Model(InfoContext, DebugContext):
  """
  Unified interface to the language model providers.

  Two clients are available:

  - ``litellm`` (default) - any provider litellm supports, stateless
  - ``openai`` - the openai SDK against OpenAI compatible endpoints, optionally
    with server-side conversations bound to sessions

  The client is chosen by the ``client`` argument, else by the
  ``AGENTSWARM_MODEL_CLIENT`` environment variable.

  **Timeout Configuration**

  - ``request_timeout`` - Timeout for one LLM call (default: 120s)
  - ``connect_timeout`` - Connection establishment timeout (default: 10s), openai client only
  """

  def __init__(
    self,
    name: str = DEFAULT_MODEL,
    client: Optional[str] = None,
    request_timeout: float = 120.0,
    connect_timeout: float = 10.0,
    **kwargs,
  ):
    """
    Initialize a Model instance.

    :param name: Model name or alias (e.g., 'gpt-4o', 'anthropic/claude-sonnet-4')
    :param client: 'litellm' or 'openai'
    :param request_timeout: Timeout for one LLM call in seconds
    :param connect_timeout: Connection establishment timeout in seconds
    :param kwargs: Additional parameters passed with every request, such as temperature
    """
    self.name = name
    self.logger = get_logger("model")
    self.request_timeout = request_timeout
    self.connect_timeout = connect_timeout
    self.kwargs = kwargs
    self.client_name = client or os.environ.get("AGENTSWARM_MODEL_CLIENT", "litellm")
    self.client = self._pick_client(name, self.client_name, **kwargs)

  def _pick_client(self, model_name: str, client_name: str, **kwargs):
    client_class = MODEL_CLIENTS.get(client_name)
    if client_class is None:
      raise ValueError(f"Unknown model client '{client_name}', expected one of: {', '.join(MODEL_CLIENTS)}")

    self.logger.debug(f"Using {client_class.__name__} for model '{model_name}'")
    if client_class is OpenAIClient:
      return OpenAIClient(
        model_name, request_timeout=self.request_timeout, connect_timeout=self.connect_timeout, **kwargs
      )
    if kwargs.pop("conversations", False):
      self.logger.warning(f"Server-side conversations need the openai client, '{model_name}' runs without them")
    return LiteLLMClient(model_name, request_timeout=self.request_timeout, **kwargs)

  def complete_chat(self, messages: List[dict], stream: bool = False, **kwargs):
    """
    Send a chat completion request to the model.

    :param messages: Wire format messages
    :param stream: When True an async iterator of chunks is returned, otherwise an awaitable
    :param kwargs: Additional parameters, such as tools and tool_choice
    """
    return self.client.complete_chat(messages, stream=stream, **kwargs)

  async def open_conversation(self, metadata: Optional[dict] = None) -> Optional[str]:
    """Open a server-side conversation when the client supports one, else return None."""
    opener = getattr(self.client, "open_conversation", None)
    if opener is None:
      return None
    return await opener(metadata)

  async def close_conversation(self, conversation_id: str):
    closer = getattr(self.client, "close_conversation", None)
    if closer is not None and conversation_id:
      await closer(conversation_id)

  async def aclose(self):
    await self.client.aclose()
