"""Shared library code: configuration, logging, errors and helpers."""
