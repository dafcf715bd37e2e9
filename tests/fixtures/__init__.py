"""Shared test data and request shapes."""
