"""
CLI module for ordersaga - contains command-line interface components.
"""

from ordersaga.cli.app import cli

__all__ = ["cli"]
