"""Shared value types: snowflake IDs, rules, directives and ledger records."""
