from .config import (
  AgentConfig,
  ToolConfig,
  SwarmConfig,
  SwarmOptions,
  DEFAULT_MAX_TURNS,
  agent_from_config,
  load_config,
)
from .session import Session
from .swarm import Swarm, compose_goal

__all__ = [
  "Swarm",
  "Session",
  "AgentConfig",
  "ToolConfig",
  "SwarmConfig",
  "SwarmOptions",
  "DEFAULT_MAX_TURNS",
  "agent_from_config",
  "load_config",
  "compose_goal",
]
