"""Database layer: models, engine and session management."""
