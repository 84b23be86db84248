"""SQLite persistence for users, projects and table metadata."""
