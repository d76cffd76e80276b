"""Inference client and rate limiting."""
