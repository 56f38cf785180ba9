import logging

from colorlog import ColoredFormatter
from datetime import datetime, UTC

GREY = "\033[38;5;245m"
YELLOW = "\033[33m"
RESET = "\033[0m"

LEVEL_LABELS = {
  "WARNING": f"{YELLOW} WARN{RESET}",
  "CRITICAL": "FATAL",
}


class Formatter(ColoredFormatter):
  """
  Colored formatter for swarm loggers.

  Logger names are shown as paths (`agent.loop` becomes `agent::loop`), timestamps
  are UTC and records logged with `extra={"session_id": ...}` get a `[session]` tag
  in front of the message.
  """

  def __init__(self, *args, **kwargs):
    kwargs.setdefault("datefmt", "%Y-%m-%dT%H:%M:%S.%fZ")
    super().__init__(*args, **kwargs)

  def format(self, record: logging.LogRecord) -> str:
    # records are shared between handlers, decorate a copy
    record = logging.makeLogRecord(record.__dict__)
    record.levelname = LEVEL_LABELS.get(record.levelname, record.levelname)
    session_id = getattr(record, "session_id", None)
    if session_id:
      record.msg = f"[{session_id}] {record.msg}"
    return super().format(record)

  def formatTime(self, record: logging.LogRecord, datefmt=None) -> str:
    try:
      when = datetime.fromtimestamp(record.created, UTC)
    except (OverflowError, OSError, ValueError):
      return f"{record.created}"
    return when.strftime(datefmt) if datefmt else when.isoformat()

  def formatMessage(self, record: logging.LogRecord) -> str:
    record.name = f"{GREY}{record.name.replace('.', '::')}{RESET}"
    record.asctime = f"{GREY}{self.formatTime(record, self.datefmt)}{RESET}"
    return super().formatMessage(record)
