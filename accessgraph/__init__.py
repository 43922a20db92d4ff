"""AccessGraph - authorization and visibility resolution engine."""

__version__ = "0.3.0"
