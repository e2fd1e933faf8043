"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (pairs, nonces, signing,
  cache, status normalization, drivers with mocked API clients)

Uses pytest with pytest-asyncio for testing async functionality.
"""
