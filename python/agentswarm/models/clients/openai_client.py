"""
Client for OpenAI compatible endpoints through the openai SDK.

Environment:

- ``OPENAI_API_KEY`` - API key
- ``OPENAI_BASE_URL`` - Base URL of an OpenAI compatible endpoint (optional)

Each client owns its own AsyncOpenAI instance, closed by `aclose`. With
``conversations=True`` the client opens a server-side conversation per session,
sends that session's turns through the Responses API bound to the
conversation, and deletes the conversation when the session ends. Only the
messages the conversation does not hold yet go out with each turn.
"""

import os
from typing import Dict, List, Optional, Tuple

import httpx
from openai import AsyncOpenAI

from ...logs import get_logger, InfoContext, DebugContext
from .litellm_client import prepare_llm_call
from .responses import ChunkTranslator, to_chat_completion, to_input_items, to_response_tool_choice, to_response_tools

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 10.0

MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 20


def create_timeout(request_timeout: float, connect_timeout: float = DEFAULT_CONNECT_TIMEOUT) -> httpx.Timeout:
  return httpx.Timeout(
    connect=connect_timeout,
    read=request_timeout,
    write=DEFAULT_WRITE_TIMEOUT,
    pool=DEFAULT_POOL_TIMEOUT,
  )


def create_limits() -> httpx.Limits:
  return httpx.Limits(
    max_connections=MAX_CONNECTIONS,
    max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
  )


class OpenAIClient(InfoContext, DebugContext):
  def __init__(
    self,
    name: str,
    request_timeout: float = 120.0,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    conversations: bool = False,
    client: Optional[AsyncOpenAI] = None,
    **kwargs,
  ):
    self.logger = get_logger("model")
    self.original_name = name
    # "openai/gpt-4o" and "gpt-4o" address the same model here
    self.name = name.split("/", 1)[1] if name.startswith("openai/") else name
    self.kwargs = kwargs
    self.conversations = conversations
    self.request_timeout = request_timeout
    self.connect_timeout = connect_timeout
    self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
    self.base_url = base_url or os.environ.get("OPENAI_BASE_URL")
    self._client = client
    # number of messages, the system prompt excluded, each conversation holds
    self._held: Dict[str, int] = {}

  def _get_client(self) -> AsyncOpenAI:
    if self._client is None:
      self._client = AsyncOpenAI(
        api_key=self.api_key,
        base_url=self.base_url,
        timeout=create_timeout(self.request_timeout, self.connect_timeout),
        max_retries=0,
        http_client=httpx.AsyncClient(limits=create_limits()),
      )
    return self._client

  def complete_chat(
    self,
    messages: List[dict],
    stream: bool = False,
    agent_name: Optional[str] = None,
    conversation: Optional[str] = None,
    **kwargs,
  ):
    self.logger.info(f"Processing {len(messages)} messages with model '{self.name}' (agent={agent_name})")
    self.logger.debug(f"Sending the following messages to the model: {messages} (stream={stream})")

    if self.conversations and conversation:
      return self._respond(messages, conversation, stream, **kwargs)

    messages, kwargs = prepare_llm_call(messages, self.kwargs, **kwargs)
    if stream:
      return self._complete_chat_stream(messages, **kwargs)
    return self._complete_chat(messages, **kwargs)

  async def _complete_chat(self, messages: List[dict], **kwargs):
    client = self._get_client()
    response = await client.chat.completions.create(model=self.name, messages=messages, stream=False, **kwargs)
    self.logger.debug(f"Received response: {response}")
    return response

  async def _complete_chat_stream(self, messages: List[dict], **kwargs):
    client = self._get_client()
    chunks = await client.chat.completions.create(model=self.name, messages=messages, stream=True, **kwargs)
    async for chunk in chunks:
      yield chunk

  def _response_request(self, messages: List[dict], conversation: str, **kwargs) -> Tuple[dict, int]:
    """
    Build a Responses request that sends only what the conversation does not hold yet.

    The leading system message is the agent's prompt, sent as `instructions` on
    every turn since instructions do not persist in a conversation. Returns the
    request and the number of messages, the prompt excluded, it covers.
    """
    instructions = None
    if messages and messages[0].get("role") == "system":
      instructions = messages[0].get("content")
      messages = messages[1:]

    held = self._held.get(conversation, 0)
    if held > len(messages):
      # the caller started over, the conversation cannot forget what it holds
      self.logger.warning(
        f"History is shorter than conversation '{conversation}', sending {len(messages)} messages without it"
      )
      new_messages, request = prepare_llm_call(messages, self.kwargs, store=False, **kwargs)
    else:
      new_messages, request = prepare_llm_call(messages[held:], self.kwargs, conversation=conversation, **kwargs)

    if "tools" in request:
      request["tools"] = to_response_tools(request["tools"])
    if "tool_choice" in request:
      request["tool_choice"] = to_response_tool_choice(request["tool_choice"])
    if instructions:
      request["instructions"] = instructions
    request["model"] = self.name
    request["input"] = to_input_items(new_messages)
    return request, len(messages)

  def _remember(self, request: dict, covered: int):
    conversation = request.get("conversation")
    if conversation is not None:
      # the conversation now also holds the reply, which the caller appends next
      self._held[conversation] = covered + 1

  def _respond(self, messages: List[dict], conversation: str, stream: bool, **kwargs):
    request, covered = self._response_request(messages, conversation, **kwargs)
    self.logger.debug(f"Sending {len(request['input'])} new items to conversation '{conversation}'")
    if stream:
      return self._respond_stream(request, covered)
    return self._respond_once(request, covered)

  async def _respond_once(self, request: dict, covered: int):
    client = self._get_client()
    response = await client.responses.create(stream=False, **request)
    self.logger.debug(f"Received response for conversation '{request.get('conversation')}': {response}")
    self._remember(request, covered)
    return to_chat_completion(response)

  async def _respond_stream(self, request: dict, covered: int):
    client = self._get_client()
    events = await client.responses.create(stream=True, **request)
    translator = ChunkTranslator()
    async for event in events:
      for chunk in translator.translate(event):
        yield chunk
    self._remember(request, covered)

  async def open_conversation(self, metadata: Optional[dict] = None) -> Optional[str]:
    if not self.conversations:
      return None
    client = self._get_client()
    conversation = await client.conversations.create(metadata=metadata or {})
    self._held[conversation.id] = 0
    self.logger.debug(f"Opened conversation '{conversation.id}'")
    return conversation.id

  async def close_conversation(self, conversation_id: str):
    if not self.conversations or not conversation_id:
      return
    self._held.pop(conversation_id, None)
    client = self._get_client()
    await client.conversations.delete(conversation_id)
    self.logger.debug(f"Deleted conversation '{conversation_id}'")

  async def aclose(self):
    if self._client is not None:
      await self._client.close()
      self._client = None
