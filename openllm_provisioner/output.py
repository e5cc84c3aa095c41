"""Severity-prefixed console output shared by every provisioning stage."""

import logging

from rich.console import Console
from rich.text import Text

console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)

logger = logging.getLogger("openllm_provisioner")


def info(message: str) -> None:
    """Print an informational message."""
    console.print(Text.assemble(("[INFO] ", "cyan"), message))
    logger.debug(message)


def warn(message: str) -> None:
    """Print a non-fatal warning."""
    console.print(Text.assemble(("[WARN] ", "yellow"), message))
    logger.debug("warning: %s", message)


def error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(Text.assemble(("[ERROR] ", "bold red"), message))
    logger.debug("error: %s", message)


def blank() -> None:
    """Print an empty separator line."""
    console.print()


def configure_logging(verbose: bool = False) -> None:
    """Route module loggers to stderr, at DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
