"""
Series Requester Package

Command-line publisher for series requests. Each name given on the command
line becomes one {"name": ...} message on the request topic, keyed by the
name and delivered durably (acks=all, idempotent producer).

Package components:
- config.py: Configuration from environment variables
- main.py: CLI entry point
"""

__version__ = "1.0.0"

from src.requester.config import RequesterConfig, load_config

__all__ = [
    "RequesterConfig",
    "load_config",
]
