"""
JSON-file ledgers.

- **json_store.py**: Tolerant loads and atomic whole-file rewrites
- **warn_ledger.py**: Per-member warning history
- **mute_ledger.py**: Active mutes and their scheduled expiry
"""
