"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager tests
- test_models.py: User model tests (display name fallback, presence defaults)
- test_views.py: Token issuance and current user endpoint

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_views.py
"""
