"""Version information for vrclog."""

__version__ = "0.1.0"
