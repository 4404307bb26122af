"""Reading and writing PostgreSQL array, bytea and timestamp text values."""

__all__ = ["arrays", "encode", "parse"]