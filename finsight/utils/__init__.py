"""Shared helpers: error handling, statistics, datetime parsing."""
