from .litellm_client import LiteLLMClient
from .openai_client import OpenAIClient

__all__ = ["LiteLLMClient", "OpenAIClient"]
