"""
Database package for Auditcord.

Holds the shared aiosqlite connection, the schema for archived log records and
the log sink that writes to it.
"""
