"""Serial MIFARE card reader: framing, polling, authentication and block reads."""

__version__ = "0.1.0"
__all__ = ["protocol", "reader", "cli"]