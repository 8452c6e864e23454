"""Detection core: loop, scheduling, events and shared types."""
