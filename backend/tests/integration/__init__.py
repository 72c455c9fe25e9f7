"""
Integration Tests

Drive the FastAPI application over HTTP with its real lifespan: database
tables, event bus workers and completion listeners all run in-process.
"""
