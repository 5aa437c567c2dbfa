"""Multi-token batch bridging on top of the Relay routing API."""

__version__ = "0.1.0"
