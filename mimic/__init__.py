"""
Mimic Proxy

Request-mocking layer: serve canned content for registered URL patterns,
forward to alternate targets, or pass traffic through untouched.
"""

__version__ = "1.0.0"
