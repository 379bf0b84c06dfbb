"""Application orchestration layer.

Wires configuration, the notifier and the services into the HTTP API.
"""

from . import config

__all__ = ["config"]
