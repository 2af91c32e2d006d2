"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / pretty logging
    errors          — exception hierarchy & handlers
    middleware      — request id, timing, request logging
    security        — operator API-key check for mutations
    health          — health check aggregation
    database        — async SQLAlchemy engine & sessions
"""
