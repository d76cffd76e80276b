"""Persistence: database, conversation store and memory store."""
