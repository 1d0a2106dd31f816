"""Audio persistence."""
