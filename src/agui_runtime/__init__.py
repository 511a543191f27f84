"""AG-UI streaming event protocol runtime."""

__version__ = "0.1.0"
