"""Background jobs for scene generation."""
