"""JAMB UTME computer-based-test practice toolkit."""

__version__ = "0.1.0"
