"""
Staff Booking Tests

Unit tests for the scheduling core and the HTTP API. Everything runs
against the in-memory store with process-local locks; Redis and the
database are mocked where their failure modes are under test.

Running Tests:
    # Install test dependencies
    pip install -e ".[test]"

    # Run all tests
    pytest tests/ -v

    # Run one module
    pytest tests/unit/test_queue_manager.py -v
"""
