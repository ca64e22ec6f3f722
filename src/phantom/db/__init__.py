"""Database base and ORM models."""
