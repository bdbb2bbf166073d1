"""ClarityCall: scheduled accountability calls driven by calendar availability."""

__version__ = "0.4.0"
