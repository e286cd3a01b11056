# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and box-drawing characters
- Box drawing helpers for formatted output
- Logging setup
- Event source selection (configured store or JSON-lines file)
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from clickpulse.analytics import AnalyticsService
from clickpulse.utils.config import get_settings

# ==============================================================================
# Constants
# ==============================================================================

# Box drawing width (unified for all commands)
BOX_WIDTH = 68

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ==============================================================================
# ANSI Colors and Box Drawing
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"


class Box:
    """Unicode box-drawing characters."""

    H = "─"  # horizontal
    V = "│"  # vertical
    TL = "┌"  # top-left
    TR = "┐"  # top-right
    BL = "└"  # bottom-left
    BR = "┘"  # bottom-right
    LT = "├"  # left-tee
    RT = "┤"  # right-tee


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    BULLET = "•"
    ARROW = "→"


# Module-level aliases for convenience
C, B, I = Colors, Box, Icons

_ANSI_ESCAPE_PATTERN = re.compile(r"\033\[[0-9;]*m")


def _visible_len(s: str) -> int:
    """Calculate visible length of string, ignoring ANSI escape codes."""
    return len(_ANSI_ESCAPE_PATTERN.sub("", s))


def _box_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a single-line box header."""
    inner_width = width - 2
    title_padded = f" {title} "
    left_bar = (inner_width - len(title_padded)) // 2
    right_bar = inner_width - left_bar - len(title_padded)
    return (
        f"{C.CYAN}{B.TL}{B.H * left_bar}{C.BOLD}{C.WHITE}{title_padded}"
        f"{C.RESET}{C.CYAN}{B.H * right_bar}{B.TR}{C.RESET}"
    )


def _section_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a section divider inside a box."""
    inner_width = width - 2
    title_padded = f" {title} "
    bar_len = inner_width - len(title_padded) - 1  # -1 for the first H after LT
    return (
        f"{C.CYAN}{B.LT}{B.H}{C.BOLD}{title_padded}{C.RESET}{C.CYAN}{B.H * bar_len}{B.RT}{C.RESET}"
    )


def _box_line(content: str, width: int = BOX_WIDTH) -> str:
    """Create a line inside the box with proper padding to right border."""
    inner_width = width - 2
    padding = max(0, inner_width - _visible_len(content))
    return f"{C.CYAN}{B.V}{C.RESET}{content}{' ' * padding}{C.CYAN}{B.V}{C.RESET}"


def _empty_line(width: int = BOX_WIDTH) -> str:
    """Create an empty line inside the box."""
    return f"{C.CYAN}{B.V}{' ' * (width - 2)}{B.V}{C.RESET}"


def _box_bottom(width: int = BOX_WIDTH) -> str:
    """Create a plain box bottom border."""
    return f"{C.CYAN}{B.BL}{B.H * (width - 2)}{B.BR}{C.RESET}"


def _error(message: str) -> None:
    print(f"\n{C.BRIGHT_RED}{I.CROSS} {message}{C.RESET}\n")


# ==============================================================================
# Logging
# ==============================================================================


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for CLI and server processes."""
    settings = get_settings()
    level = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


# ==============================================================================
# Event Sources
# ==============================================================================


def get_analytics_service(input_file: Optional[Path] = None) -> AnalyticsService:
    """
    Build an AnalyticsService over the configured store or a JSON-lines file.

    For a file, relative windows ("1d", "7d", ...) are anchored at the most
    recent event in the file rather than the wall clock.

    Raises:
        typer.Exit: If the file cannot be read
    """
    from clickpulse.infrastructure import InMemoryEventStore, get_event_store

    settings = get_settings()

    if input_file is None:
        store = get_event_store(settings)
        store.connect()
        return AnalyticsService(store, settings.analytics)

    try:
        store = InMemoryEventStore.from_jsonl(input_file)
    except (OSError, ValueError) as e:
        _error(f"Could not read events from {input_file}: {e}")
        raise typer.Exit(1)

    events = store.all()
    latest = max((e.timestamp for e in events), default=datetime.now(timezone.utc))
    return AnalyticsService(store, settings.analytics, clock=lambda: latest)
