"""
Unit Tests

Grading rules, statistics, levels, recommendations and the event bus. Tests
that need persistence use the temporary SQLite database from conftest.py; no
external services are required.
"""
