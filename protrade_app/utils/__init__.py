"""
Utility functions module.

Time Semantics:
- All components read "now" from an injected Clock so windows, TTLs and
  daily caps are deterministic under test
- Daily signal caps are keyed by the local calendar date
"""
