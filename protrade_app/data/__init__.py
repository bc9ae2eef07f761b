"""Market data models, normalization and collaborator access."""
