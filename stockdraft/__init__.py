"""Stock Draft: leaderboard service for a fantasy stock draft contest."""

__version__ = "0.1.0"
__author__ = "Stock Draft Team"

__all__ = ["__version__", "__author__"]
