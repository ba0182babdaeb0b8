"""Candidate document handling: normalization, batching, continuity."""
