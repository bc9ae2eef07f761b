"""Dynamic multi-method take-profit planning."""
