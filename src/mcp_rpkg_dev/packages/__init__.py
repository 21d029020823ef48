"""R package descriptor parsing."""
