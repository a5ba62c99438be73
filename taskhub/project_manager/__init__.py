"""Projects, tasks and the authorization policy."""
