from .errors import (
  ErrorKind,
  SwarmError,
  InitializationError,
  AgentError,
  ToolError,
  UnauthorizedToolError,
  ExecutionError,
  MaxTurnsExceededError,
  RateLimitError,
  AuthenticationError,
  ModelError,
  InvalidFlowError,
  ConcurrencyError,
  classify_error,
)
from .agents import AgentDefinition, TransferPolicy
from .conversation import (
  ConversationState,
  UserMessage,
  SystemMessage,
  AssistantMessage,
  ToolCallResponseMessage,
  ToolCall,
  FunctionToolCall,
)
from .tools import Tool, ConfiguredTool, RemoteTool, ToolRegistry, Result, AgentSwitch
from .models import Model, CompletionGateway, StreamAccumulator
from .execution import AgentLoop, LoopResult, ToolDispatcher, TurnStart, TurnEnd
from .planning import Planner, ModelPlanner
from .swarm import Swarm, Session, SwarmConfig, AgentConfig, ToolConfig

__all__ = [
  "ErrorKind",
  "SwarmError",
  "InitializationError",
  "AgentError",
  "ToolError",
  "UnauthorizedToolError",
  "ExecutionError",
  "MaxTurnsExceededError",
  "RateLimitError",
  "AuthenticationError",
  "ModelError",
  "InvalidFlowError",
  "ConcurrencyError",
  "classify_error",
  "AgentDefinition",
  "TransferPolicy",
  "ConversationState",
  "UserMessage",
  "SystemMessage",
  "AssistantMessage",
  "ToolCallResponseMessage",
  "ToolCall",
  "FunctionToolCall",
  "Tool",
  "ConfiguredTool",
  "RemoteTool",
  "ToolRegistry",
  "Result",
  "AgentSwitch",
  "Model",
  "CompletionGateway",
  "StreamAccumulator",
  "AgentLoop",
  "LoopResult",
  "ToolDispatcher",
  "TurnStart",
  "TurnEnd",
  "Planner",
  "ModelPlanner",
  "Swarm",
  "Session",
  "SwarmConfig",
  "AgentConfig",
  "ToolConfig",
]
