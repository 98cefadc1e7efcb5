"""
Console output formatting for Hypatia.

Styled terminal output for agent activity, step progress and
notifications. Agent loops report through here instead of printing.
"""

import os
import re
import sys
from datetime import datetime
from typing import Optional


class Style:
    """ANSI escape codes for terminal styling."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"


class StatusIcon:
    """Status icons for different operations."""
    SUCCESS = "✓"
    FAILURE = "✗"
    WARNING = "⚠"
    INFO = "ℹ"
    RUNNING = "●"
    BULLET = "•"
    ARROW = "→"
    BRAIN = "🧠"
    CODE = "💻"


class Console:
    """
    Styled console output for Hypatia.

    - Colored status indicators
    - Agent log lines attributed by role
    - Step and workflow banners
    """

    _enabled = True
    _verbose = os.environ.get("HYPATIA_VERBOSE", "0").lower() in ("1", "true", "yes", "on")

    @classmethod
    def enable_colors(cls, enabled: bool = True) -> None:
        """Enable or disable colored output."""
        cls._enabled = enabled

    @classmethod
    def set_verbose(cls, verbose: bool = True) -> None:
        """Enable verbose output mode."""
        cls._verbose = verbose

    @classmethod
    def _style(cls, text: str, *styles: str) -> str:
        """Apply styles to text if colors are enabled."""
        if not cls._enabled or not sys.stdout.isatty():
            return text
        style_str = "".join(styles)
        return f"{style_str}{text}{Style.RESET}"

    # === Status Messages ===

    @classmethod
    def success(cls, message: str, detail: Optional[str] = None) -> None:
        """Print a success message."""
        icon = cls._style(StatusIcon.SUCCESS, Style.GREEN, Style.BOLD)
        msg = cls._style(message, Style.GREEN)
        if detail:
            print(f"{icon} {msg} {cls._style(f'({detail})', Style.DIM)}")
        else:
            print(f"{icon} {msg}")

    @classmethod
    def error(cls, message: str, detail: Optional[str] = None) -> None:
        """Print an error message."""
        icon = cls._style(StatusIcon.FAILURE, Style.RED, Style.BOLD)
        msg = cls._style(message, Style.RED)
        if detail:
            print(f"{icon} {msg} {cls._style(f'({detail})', Style.DIM)}")
        else:
            print(f"{icon} {msg}")

    @classmethod
    def warning(cls, message: str, detail: Optional[str] = None) -> None:
        """Print a warning message."""
        icon = cls._style(StatusIcon.WARNING, Style.YELLOW)
        msg = cls._style(message, Style.YELLOW)
        if detail:
            print(f"{icon} {msg} {cls._style(f'({detail})', Style.DIM)}")
        else:
            print(f"{icon} {msg}")

    @classmethod
    def info(cls, message: str, detail: Optional[str] = None) -> None:
        """Print an info message."""
        icon = cls._style(StatusIcon.INFO, Style.BLUE)
        if detail:
            print(f"{icon} {message} {cls._style(f'({detail})', Style.DIM)}")
        else:
            print(f"{icon} {message}")

    @classmethod
    def debug(cls, message: str) -> None:
        """Print a debug message (verbose mode only)."""
        if cls._verbose:
            print(cls._style(f"  {StatusIcon.BULLET} {message}", Style.DIM))

    # === Agent Activity ===

    @classmethod
    def agent_log(cls, agent_name: str, message: str) -> None:
        """Log one attributed line from an agent loop (verbose mode only)."""
        if not cls._verbose:
            return
        name = cls._style(f"[{agent_name}]", Style.MAGENTA, Style.BOLD)
        print(f"  {name} {message}")

    @classmethod
    def sandbox_output(cls, line: str) -> None:
        """Echo one line of sandboxed script output."""
        if cls._verbose:
            print(cls._style(f"  {StatusIcon.CODE} > {line}", Style.DIM))

    # === Workflow Status ===

    @classmethod
    def workflow_start(cls, workflow_name: str) -> None:
        """Log workflow starting."""
        line = cls._style("─" * 50, Style.DIM)
        name = cls._style(workflow_name.upper(), Style.BOLD, Style.CYAN)
        print(f"\n{line}")
        print(f"  {StatusIcon.RUNNING} Starting: {name}")
        print(f"{line}")

    @classmethod
    def workflow_step(cls, step_num: int, description: str) -> None:
        """Log workflow step."""
        step = cls._style(f"Step {step_num}", Style.BOLD)
        print(f"\n  {StatusIcon.BULLET} {step}: {description}")

    @classmethod
    def workflow_complete(cls, workflow_name: str, summary: str = "") -> None:
        """Log workflow completion."""
        line = cls._style("─" * 50, Style.DIM)
        name = cls._style(workflow_name.upper(), Style.BOLD, Style.GREEN)
        icon = cls._style(StatusIcon.SUCCESS, Style.GREEN, Style.BOLD)
        print(f"\n{line}")
        print(f"  {icon} Completed: {name}")
        if summary:
            print(f"  {summary}")
        print(f"{line}")

    @classmethod
    def workflow_failed(cls, workflow_name: str, error: str) -> None:
        """Log workflow failure."""
        line = cls._style("─" * 50, Style.DIM)
        name = cls._style(workflow_name.upper(), Style.BOLD, Style.RED)
        icon = cls._style(StatusIcon.FAILURE, Style.RED, Style.BOLD)
        print(f"\n{line}")
        print(f"  {icon} Failed: {name}")
        print(f"  Error: {error}")
        print(f"{line}")

    @classmethod
    def header(cls, text: str, width: int = 60) -> None:
        """Print a section header."""
        line = "═" * width
        print(f"\n{cls._style(line, Style.CYAN)}")
        print(f"  {cls._style(text, Style.BOLD)}")
        print(f"{cls._style(line, Style.CYAN)}")


console = Console()


_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_+-]*\s*\n?|\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading/trailing Markdown code fence from model output."""
    return _FENCE_RE.sub("", text.strip()).strip()


def get_current_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now().isoformat()


__all__ = [
    "Style",
    "StatusIcon",
    "Console",
    "console",
    "strip_code_fences",
    "get_current_timestamp",
]
