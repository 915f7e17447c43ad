"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / pretty console logging
    middleware      — request id, timing and access logging
    errors          — exception hierarchy & handlers
    security        — bearer-token actors and roles
    health          — health check aggregation
    database        — async SQLAlchemy engine and sessions
"""
