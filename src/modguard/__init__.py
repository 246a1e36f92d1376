"""
ModGuard - Rule-based Discord Moderation Bot

ModGuard evaluates every guild message against an ordered set of configurable
rules and escalates the first violation through a fixed state machine.

Core Components:

- **Rule Engine**: Blocked words, invite links, blocked domains, mention, emoji
  and caps limits; first matching rule wins
- **Escalation**: Warn, mute, kick or ban; the third warning removes the member
- **Ledgers**: JSON-backed warn history and mute ledger with expiries that are
  re-armed after a restart
- **Commands**: Rate-limited ``warn``/``mute``/``kick``/``ban`` prefix commands
  behind a staff authorization check
- **Audit Trail**: Every action is logged, stored in SQLite and posted to the
  configured log channel

Usage:
    from modguard.main import main
    main()
"""
