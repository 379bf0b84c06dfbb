"""
Saleengine package initializer.

This package implements the contested resource allocation engine of the estate
sale marketplace: auction bidding and settlement, and the physical line
(queue) that shoppers join when a sale opens.

The package exposes a ``__version__`` attribute indicating the installed
version of Saleengine. The version is read from pyproject.toml via
importlib.metadata – this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("saleengine")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
