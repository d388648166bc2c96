"""Database infrastructure: declarative base, engine/session management, listeners."""
