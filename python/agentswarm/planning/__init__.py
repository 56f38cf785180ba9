from .protocol import Planner
from .planner import ModelPlanner, PLANNING_PROMPT

__all__ = ["Planner", "ModelPlanner", "PLANNING_PROMPT"]
