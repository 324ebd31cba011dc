"""CLI command handlers."""

from .run import run_flow

__all__ = ['run_flow']
