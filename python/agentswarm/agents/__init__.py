from .definition import (
  AgentDefinition,
  TransferPolicy,
  Instructions,
  TOOL_CHOICE_AUTO,
  TOOL_CHOICE_NONE,
  DEFAULT_INSTRUCTIONS,
)

__all__ = [
  "AgentDefinition",
  "TransferPolicy",
  "Instructions",
  "TOOL_CHOICE_AUTO",
  "TOOL_CHOICE_NONE",
  "DEFAULT_INSTRUCTIONS",
]
