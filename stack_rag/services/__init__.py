"""Embedding, batch, search and index-building services."""
