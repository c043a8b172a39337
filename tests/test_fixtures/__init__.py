"""
Test Fixtures Package

Shared fakes for the outbound HTTP layer.
"""

from .http_factory import FakeContent, FakeResponse, FakeSession, sse_body

__all__ = ["FakeContent", "FakeResponse", "FakeSession", "sse_body"]
