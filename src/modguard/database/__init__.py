"""
Database package for ModGuard.

Holds the single aiosqlite connection and the audit-trail repository.
"""
