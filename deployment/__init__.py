"""Deployment: HTTP entry point and resilience helpers."""
