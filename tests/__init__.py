"""
Test Suite

Structure:
    tests/
    ├── conftest.py                  # mongomock database and directory fixtures
    ├── test_form_engine.py          # Block structure, visibility, field rules
    ├── test_assignment_resolver.py  # Operator resolution and binding
    ├── test_schema_service.py       # Publication checks and catalog
    ├── test_workflow_engine.py      # Ticket lifecycle
    └── test_api.py                  # HTTP routes

To run tests:
    pytest tests/
"""
