"""Chat domain: one-to-one conversations between marketplace users."""
