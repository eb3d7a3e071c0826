"""Database layer: declarative base, column conventions, engine/session setup."""
