"""Validated domain value types."""

__all__ = ["hometype", "money", "name", "quantity", "role"]