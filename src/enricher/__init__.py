"""
Series Enricher Service Package

Consumes {"name": ...} requests from Kafka, resolves each series against the
IMDb provider, and persists the result:

┌──────────────────┐     ┌──────────┐     ┌─────────────────────┐
│ tvserie-retrieve │────▶│ enricher │────▶│ MongoDB tvseries    │
│ (requests)       │     │ 1 msg in │────▶│ PostgreSQL episodes │
└──────────────────┘     │ flight   │     └─────────────────────┘
                         └────┬─────┘
                              └─────────▶ tvserie-saved (optional announcements)

OFFSET MANAGEMENT:
1. Poll one message
2. Lookup, upsert document, write episode rows, announce
3. Commit the offset only if every step succeeded
4. Otherwise seek back: the same message is delivered again

Package components:
- config.py: Configuration from environment variables
- lookup.py: IMDb find/get-seasons client
- documents.py: MongoDB series upserts
- database.py / models.py: PostgreSQL episode rows
- pipeline.py: Per-message state machine
- consumer.py: Kafka poll/commit/seek loop
- main.py: Bootstrap, CLI and shutdown handling
"""

__version__ = "1.0.0"

from src.enricher.config import EnricherConfig, load_config

__all__ = [
    "EnricherConfig",
    "load_config",
]
