"""
ArchForge CLI Module.

Provides command-line interface for ArchForge operations.
"""

from archforge.cli.main import cli, main

__all__ = ["main", "cli"]
