"""Conformance test scenarios for the idempotency guard.

This package contains end-to-end scenario tests that drive the guard through
an ASGI endpoint. Each scenario tests a specific aspect of idempotency
handling.
"""
