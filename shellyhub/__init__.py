"""WebSocket hub that identifies Shelly devices and polls their state."""

__version__ = "0.1.0"
__all__ = ["__version__"]