"""Work/break enforcement engine for harm-cli."""

__version__ = "0.1.0"

__all__ = ["__version__"]
