from .protocol import InvokableTool
from .tool import Tool, ConfiguredTool, as_tool, function_spec, parameters_spec, describe_failure
from .outcome import Result, Value, HandoffResult, AgentSwitch, ToolOutcome, OutcomeKind, to_outcome
from .registry import ToolRegistry
from .builtin import SwitchAgentTool, RemoteTool, SWITCH_AGENT_TOOL, REMOTE_TOOL_TYPES

__all__ = [
  "InvokableTool",
  "Tool",
  "ConfiguredTool",
  "RemoteTool",
  "SwitchAgentTool",
  "SWITCH_AGENT_TOOL",
  "REMOTE_TOOL_TYPES",
  "ToolRegistry",
  "Result",
  "Value",
  "HandoffResult",
  "AgentSwitch",
  "ToolOutcome",
  "OutcomeKind",
  "as_tool",
  "to_outcome",
  "function_spec",
  "parameters_spec",
  "describe_failure",
]
