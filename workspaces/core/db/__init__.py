"""SQLite store: tables, engine and schema migrations."""
