"""Weighted consensus over AI opinions and the technical score."""
