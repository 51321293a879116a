"""Logging configuration for the fading_channel package."""

import coloredlogs


def setup_logging(level: str = "INFO", *, show_thread: bool = False) -> None:
  """Configure the root logger with a short, colored format.

  Should be called once at the entry point of the application; the library
  itself only creates module loggers.

  Args:
    level: Logging level (e.g., "INFO", "DEBUG", "WARNING").
    show_thread: Include the thread name, useful when characterization
      queries run beside the processing thread.
  """
  thread = "%(threadName)s | " if show_thread else ""
  log_format = f"%(asctime)s | %(levelname)-8s | {thread}%(name)s | %(message)s"
  coloredlogs.install(
    level=level,
    fmt=log_format,
    datefmt="%H:%M:%S",
    is_system_wide=True,
  )
