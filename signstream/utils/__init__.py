"""
Shared utilities: configuration, logging, constants and failure tracking.
"""
