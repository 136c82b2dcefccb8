"""
User-facing notifications.

A fire-and-forget side channel: messages are printed to stderr with rich and
logged. Views take a notifier callable so callers can redirect notices.
"""
import logging
from typing import Callable

from rich.console import Console
from rich.markup import escape

logger = logging.getLogger(__name__)

console = Console(stderr=True)

Notifier = Callable[[str], None]


def notify(message: str) -> None:
    """Show a notice to the user."""
    logger.warning(message)
    console.print(f"[bold yellow]![/bold yellow] {escape(message)}")
