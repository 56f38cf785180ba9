from .model import Model, DEFAULT_MODEL
from .completion import (
  Completion,
  CompletionRequest,
  ContentDelta,
  ToolCallDelta,
  EndOfTurn,
  Delta,
  new_tool_call_id,
)
from .accumulator import StreamAccumulator
from .gateway import CompletionGateway, normalize_chunk, normalize_response, tool_choice_param

__all__ = [
  "Model",
  "DEFAULT_MODEL",
  "Completion",
  "CompletionRequest",
  "ContentDelta",
  "ToolCallDelta",
  "EndOfTurn",
  "Delta",
  "StreamAccumulator",
  "CompletionGateway",
  "normalize_chunk",
  "normalize_response",
  "tool_choice_param",
  "new_tool_call_id",
]
