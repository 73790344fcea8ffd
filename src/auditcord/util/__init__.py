"""
Utility functions and helpers for Auditcord.

- **logger.py**: Centralized logging configuration with colored console output
  and rotating file handlers. Uses prompt_toolkit for non-blocking console I/O.

- **role_actions.py**: Role edits performed by the bot that register their
  ignore entries first, so the audit pipeline does not log them.
"""
