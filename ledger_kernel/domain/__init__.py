"""Pure domain helpers: clock abstraction and balance checks."""
