"""CLI interface facades for Saleengine.

This package is the canonical home for all Click commands.
"""

from .__main__ import cli
from .bid import bid
from .line import line
from .settle import settle

__all__ = ["bid", "cli", "line", "settle"]
