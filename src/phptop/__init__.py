"""phptop - rank PHP requests by resource usage from recent log samples."""

__version__ = "1.0.0"
