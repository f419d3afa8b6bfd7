"""onwatch polling agent."""

from .poller import Poller
from .runner import build_notifier, build_pollers, main, run
from .sessions import SessionManager

__all__ = ["Poller", "SessionManager", "build_pollers", "build_notifier", "run", "main"]
