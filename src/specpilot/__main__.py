"""Main entry point for running spec-pilot as a module.

Usage:
    python -m specpilot --help
    python -m specpilot run specs/my-feature.yaml
    python -m specpilot cleanup my-feature
"""

from __future__ import annotations

from .cli import app

if __name__ == "__main__":
    app()
