"""spec-pilot: drive an AI coding agent through a YAML task spec."""

__version__ = "0.1.0"
