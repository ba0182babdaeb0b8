"""Digest curation pipeline: pre-filter, batch extraction, merge."""
