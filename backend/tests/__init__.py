"""
LearnPath Test Suite

Test Structure:
    tests/
    ├── conftest.py          # Test settings, SQLite database, seeded catalog
    ├── unit/                # Services and rules against the test database
    └── integration/         # HTTP API through the full application lifespan

Running Tests:
    # Run all tests
    pytest tests/ -v

    # Run only unit tests
    pytest tests/unit/ -v

    # Run only integration tests
    pytest tests/integration/ -v

    # Run with coverage
    pytest tests/ --cov=learnpath --cov-report=html
"""
