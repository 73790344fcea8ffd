"""
Immutable value types shared across Auditcord: snowflake wrappers, entity
snapshots, deltas, audit entries and log records.
"""
