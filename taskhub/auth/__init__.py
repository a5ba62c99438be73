"""Authentication, credentials and user endpoints."""
