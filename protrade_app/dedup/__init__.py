"""Per-symbol duplicate suppression and daily caps."""
