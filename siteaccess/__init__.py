"""Effective-access resolution for multi-tenant construction projects."""

__version__ = "0.1.0"
