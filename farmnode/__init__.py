"""Bridge a farm sensor controller on a serial line to an MQTT gateway."""

__version__ = "0.1.0"
__all__ = ["__version__"]