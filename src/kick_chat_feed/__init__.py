"""Kick live chat feed client."""

from .__version__ import __version__

__all__ = ["__version__"]
