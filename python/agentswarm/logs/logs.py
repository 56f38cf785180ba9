from contextlib import contextmanager

import os
import logging.config
from typing import Optional, Protocol

DEFAULT_LOG_FORMAT = os.getenv(
  "AGENTSWARM_LOG_FORMAT", "%(asctime)s %(log_color)s%(levelname)5s%(reset)s %(name)-10s %(message)s"
)
FORMAT = DEFAULT_LOG_FORMAT + (" [%(pathname)s:%(lineno)d]" if os.getenv("AGENTSWARM_LOG_SHOW_SOURCE") else "")

LOG_LEVELS: dict[str, str] = {}

LEVELS: dict[str, int] = {
  "critical": logging.CRITICAL,
  "error": logging.ERROR,
  "warning": logging.WARNING,
  "info": logging.INFO,
  "debug": logging.DEBUG,
}

SWARM_LOGGERS = ["swarm", "session", "agent", "tool", "model", "planner"]
QUIET_LOGGERS = ["asyncio", "httpcore", "httpx", "openai", "LiteLLM", "LiteLLM Router", "LiteLLM Proxy"]


def get_logging_config() -> dict:
  # Disable logging if explicitly set to 0; otherwise, assume it's enabled
  if os.environ.get("AGENTSWARM_LOGGING", "1") == "0":
    return {"version": 1, "disable_existing_loggers": False}

  if not LOG_LEVELS:
    set_log_levels(os.environ.get("AGENTSWARM_LOG_LEVELS"))
  return create_logging_config(LOG_LEVELS, FORMAT)


def get_log_levels() -> dict[str, str]:
  return dict(LOG_LEVELS)


def set_log_level(module_name: str, level: str):
  """
  Set the log level for a specific logger and apply it immediately.
  """
  if level.lower() not in LEVELS:
    raise ValueError(f"Unknown log level '{level}', expected one of: {', '.join(LEVELS)}")
  if not LOG_LEVELS:
    LOG_LEVELS.update(create_log_levels(os.environ.get("AGENTSWARM_LOG_LEVELS")))
  LOG_LEVELS[module_name] = level.upper()
  logging.getLogger(None if module_name == "default" else module_name).setLevel(level.upper())


def set_log_levels(log_levels: Optional[str]):
  LOG_LEVELS.clear()
  LOG_LEVELS.update(create_log_levels(log_levels))


def apply_log_levels():
  """Reconfigure logging with the current levels, for changes made after import."""
  logging.config.dictConfig(get_logging_config())


def create_logging_config(levels: dict, log_format: str) -> dict:
  loggers = {}
  for name in QUIET_LOGGERS:
    loggers[name] = {
      "handlers": ["default"],
      "level": levels.get(name, "WARNING"),
      "propagate": False,
    }
  for name in SWARM_LOGGERS:
    loggers[name] = {
      "handlers": ["default"],
      "level": levels.get(name) or levels.get("default"),
      "propagate": False,
    }

  return {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
      "default": {
        "()": "agentswarm.logs.formatter.Formatter",
        "format": log_format,
        "log_colors": {
          "DEBUG": "blue",
          "INFO": "green",
          "WARNING": "yellow",
          "ERROR": "red",
          "CRITICAL": "bold_red",
        },
      },
    },
    "handlers": {
      "default": {
        "level": levels.get("default"),
        "formatter": "default",
        "class": "logging.StreamHandler",
      },
    },
    "loggers": loggers,
    "root": {"level": levels.get("default"), "handlers": ["default"]},
  }


def create_log_levels(log_levels: Optional[str]) -> dict[str, str]:
  """
  Parse a level list such as "info,agent=debug,tool=warning".

  A bare level sets the default, `name=level` pairs set individual loggers.
  """
  result = {"default": "INFO"}
  for item in (log_levels or "").split(","):
    name, separator, level = item.strip().rpartition("=")
    if not level:
      continue
    result[name.strip() if separator else "default"] = level.strip().upper()
  return result


def get_logger(logger_name):
  logging.config.dictConfig(get_logging_config())
  return logging.getLogger(logger_name)


class LoggerAware(Protocol):
  logger: logging.Logger


class InfoContext(LoggerAware):
  @contextmanager
  def info(self, before_msg, after_msg):
    self.logger.info(before_msg)
    try:
      yield
    except Exception as e:
      self.logger.info(f"{type(e).__name__}: {e}")
      raise
    self.logger.info(after_msg)


class DebugContext(LoggerAware):
  @contextmanager
  def debug(self, before_msg, after_msg):
    self.logger.debug(before_msg)
    try:
      yield
    except Exception as e:
      self.logger.debug(f"{type(e).__name__}: {e}")
      raise
    self.logger.debug(after_msg)
