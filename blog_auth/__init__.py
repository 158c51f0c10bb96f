"""Credential and session-lifecycle service for the blog backend."""

__version__ = "0.1.0"
