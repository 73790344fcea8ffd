"""
Configuration loading for Auditcord.

- **app_configuration.py**: YAML-backed application config with fcntl locking.
- **audit_settings.py**: Typed accessors for the ``audit_settings`` block.
"""
