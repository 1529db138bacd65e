"""Local control plane for the dt explorer: backend supervision and request bridging."""

__version__ = "0.1.0"
