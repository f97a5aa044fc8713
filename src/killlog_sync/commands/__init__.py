"""
Killlog Sync Commands

Command implementations for the CLI.
Each module handles a logical group of related commands.
"""

from . import killlog

__all__ = [
    "killlog",
]
