"""
Command line entry point.

The configuration is a Python object, since tool handlers are Python
functions: `--config package.module:CONFIG` names a `SwarmConfig` dict.

  agentswarm run --config bank.swarm:CONFIG --agent teller --goal "balance of account 42"
  agentswarm plan --config bank.swarm:CONFIG --goal "close account 42"
"""

import argparse
import asyncio
import importlib
import sys
from typing import List, Optional

from .errors import SwarmError
from .execution.loop import LoopResult, TurnStart
from .logs import apply_log_levels, get_logger, set_log_levels
from .models.completion import ContentDelta
from .swarm import Swarm

logger = get_logger("session")


def load_object(reference: str):
  module_name, _, attribute = reference.partition(":")
  if not module_name or not attribute:
    raise ValueError(f"Expected 'module:ATTRIBUTE', got '{reference}'")
  module = importlib.import_module(module_name)
  try:
    return getattr(module, attribute)
  except AttributeError:
    raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'")


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="agentswarm", description="Run a swarm of agents")
  parser.add_argument("--log-levels", help='Log levels, e.g. "info,agent=debug"')
  commands = parser.add_subparsers(dest="command", required=True)

  run = commands.add_parser("run", help="Run one session to completion")
  run.add_argument("--config", required=True, help="Swarm configuration as module:ATTRIBUTE")
  run.add_argument("--agent", help="Agent that starts the session, defaults to the first one")
  run.add_argument("--goal", required=True, help="Goal of the session")
  run.add_argument("--script", help="File with a step by step script appended to the goal")
  run.add_argument("--stream", action="store_true", help="Print the answer as it is generated")

  plan = commands.add_parser("plan", help="Generate a script for a goal")
  plan.add_argument("--config", required=True, help="Swarm configuration as module:ATTRIBUTE")
  plan.add_argument("--goal", required=True, help="Goal to plan for")
  return parser


async def run_command(args) -> int:
  swarm = Swarm(load_object(args.config))
  try:
    if args.command == "plan":
      print(await swarm.generate_script(args.goal))
      return 0

    script = None
    if args.script:
      with open(args.script) as f:
        script = f.read()

    agent_name = args.agent or next(iter(swarm.agents))
    if not args.stream:
      print(await swarm.run_once(agent_name, args.goal, script))
      return 0

    session = await swarm.create_session(agent_name)
    try:
      async for item in swarm.run_session_stream(session.id, args.goal, script):
        if isinstance(item, TurnStart):
          print(f"\n[{item.agent}]", flush=True)
        elif isinstance(item, ContentDelta):
          print(item.text, end="", flush=True)
        elif isinstance(item, LoopResult):
          print()
    finally:
      try:
        await swarm.end_session(session.id)
      except Exception as e:
        logger.warning(f"Failed to end session '{session.id}': {type(e).__name__}: {e}")
    return 0
  finally:
    await swarm.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
  args = build_parser().parse_args(argv)
  if args.log_levels:
    set_log_levels(args.log_levels)
    apply_log_levels()

  try:
    return asyncio.run(run_command(args))
  except SwarmError as e:
    print(f"{e.kind.value}: {e}", file=sys.stderr)
    return 1
  except ValueError as e:
    print(f"error: {e}", file=sys.stderr)
    return 2


if __name__ == "__main__":
  sys.exit(main())
