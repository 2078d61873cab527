"""
Tests Package.

This package contains test suites for validating keyframe reconciliation,
including unit tests for time resolution, dependency sorting and state
interpolation, and integration tests for whole scenes compiled from data.
"""

# Tests Package
