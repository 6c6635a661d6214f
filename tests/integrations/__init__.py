"""
Integration test modules

Tests for external payment provider adapters.
"""
