"""Local document store backends."""
