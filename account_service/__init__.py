"""Account validation and credential verification service."""
