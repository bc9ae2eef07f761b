"""Signal data models."""
