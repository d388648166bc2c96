"""Read-only selectors.  Selectors never add, flush or commit."""
