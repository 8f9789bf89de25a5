"""Clone a PowerVS partition's volumes onto a target partition and boot it."""

from .__version__ import __version__

__all__ = ["__version__"]
