"""Database engine, session scopes, models and SQL queries."""
