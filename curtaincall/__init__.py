"""CurtainCall: identity resolution and score consensus for critic reviews."""

__version__ = "0.3.0"
