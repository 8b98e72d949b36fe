"""acpvisor - host-side engine for Agent Client Protocol agents."""

__version__ = "0.1.0"
