"""
Auditcord: audit event correlation and logging for Discord moderation bots.
"""
