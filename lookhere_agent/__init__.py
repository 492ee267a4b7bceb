"""LookHere agent: discovers the monitor and streams this station's screen."""

__version__ = "1.0.0"
