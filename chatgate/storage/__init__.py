"""Account store backends."""
