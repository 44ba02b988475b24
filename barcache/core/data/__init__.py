"""Persistence schema, storage and upstream vendors."""
