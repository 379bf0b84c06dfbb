"""Domain layer facade for Saleengine.

This package groups the pure business logic and shared models that do not
concern infrastructure or interface details: item, bid and line entry models,
their state rules, and the error taxonomy raised by the engine services.
"""

from . import errors, models

__all__ = ["errors", "models"]
