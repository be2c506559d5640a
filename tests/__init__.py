"""
Test Suite

This module contains all tests for the StepFlow backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures (in-memory stores, sample templates)
    ├── factories.py        # Step and rule builders
    ├── unit/               # Engine, expression, store and utility tests
    └── integration/        # API endpoint tests (FastAPI TestClient)

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
