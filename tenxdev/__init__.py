"""
Backend package for the 10xDev content API.

This package provides a FastAPI application exposing content, saved-item and
GitHub sync routes, with database, storage and auth abstractions that can run
against Supabase in production or in memory for local development and tests.
"""

__version__ = "1.0.0"
