"""Persistence: SQLAlchemy async engine, ORM models and trade repositories."""
