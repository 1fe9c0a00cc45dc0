"""Resize a live partition table so reserved partitions reach their configured sizes."""

from .__version__ import __version__

__all__ = ["__version__"]
