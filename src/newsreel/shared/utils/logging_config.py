#!/usr/bin/env python3
"""
Logging configuration using Rich library for newsreel
"""

import logging
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler


# Global console instance for consistent styling
console = Console()

NOISY_LIBRARIES = [
    'httpx', 'httpcore', 'aiohttp', 'urllib3', 'asyncio',
    'google_genai', 'google_genai.models', 'PIL'
]


def setup_logging(level: str = "INFO",
                 quiet_mode: bool = False) -> None:
    """
    Set up clean, developer-friendly logging using Rich.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        quiet_mode: If True, reduce noise from third-party libraries
    """

    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=True,
        log_time_format="[%H:%M:%S]"
    )

    rich_handler.setFormatter(logging.Formatter(
        fmt="%(message)s",
        datefmt="[%X]"
    ))

    root_logger.addHandler(rich_handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    if quiet_mode:
        for lib in NOISY_LIBRARIES:
            logging.getLogger(lib).setLevel(logging.ERROR)

    if level.upper() != "DEBUG":
        # The audio pump and frame capture log per block at debug level
        logging.getLogger('newsreel.playback.audio').setLevel(logging.INFO)
        logging.getLogger('newsreel.recorder.screen').setLevel(logging.INFO)


def log_step(logger: logging.Logger, step: str, details: str = ""):
    """Log a major pipeline step with Rich styling."""
    if details:
        logger.info(f"[green]✓[/green] [bold]{step}[/bold]: {details}")
    else:
        logger.info(f"[green]✓[/green] [bold]{step}[/bold]")


def log_result(logger: logging.Logger, operation: str,
               input_count: int, output_count: int,
               duration: Optional[float] = None):
    """Log operation results with Rich styling."""
    time_info = f" in [dim]{duration:.1f}s[/dim]" if duration else ""
    logger.info(f"[green]✓[/green] [bold]{operation}[/bold]: {input_count} → {output_count}{time_info}")


def log_warning(logger: logging.Logger, message: str):
    """Log a warning with Rich styling."""
    logger.warning(f"[yellow]⚠[/yellow] {message}")


def log_error(logger: logging.Logger, message: str):
    """Log an error with Rich styling."""
    logger.error(f"[red]✗[/red] {message}")
