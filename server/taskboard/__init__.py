"""
Taskboard API package.

A FastAPI service for task management: bearer-token authentication, task CRUD
with per-owner visibility, and administrator-only user management, backed by
SQLAlchemy (Postgres in production, SQLite or in-memory for tests).
"""
