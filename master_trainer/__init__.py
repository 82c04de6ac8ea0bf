"""Master Trainer practice client and console API."""

__version__ = "1.0.0"
