"""dit - clock in and out of hierarchical tasks, with a rebuildable index."""

__version__ = "0.1.0"
