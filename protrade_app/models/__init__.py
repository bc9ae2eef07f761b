"""Shared data models for indicator and market context snapshots."""
