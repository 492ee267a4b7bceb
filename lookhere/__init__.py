"""LookHere, LAN screen monitoring: discovery, session registry, and streaming.

The ``lookhere`` package holds the monitor side and the wire code shared with
the agent (:mod:`lookhere.framing`, :mod:`lookhere.protocol`).
"""

__version__ = "1.0.0"
