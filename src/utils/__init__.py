"""Row mover - shared utilities."""
