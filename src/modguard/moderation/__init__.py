"""
Moderation core for ModGuard.

- **rule_engine.py**: Rule handlers and first-match evaluation
- **escalation.py**: Severity state machine over the ledgers and the platform
- **automod.py**: Automod pass (bypass checks, cooldown, evaluation)
- **command_actions.py**: Manual warn/mute/kick/ban and panic commands
- **panic.py**: Channel lockdown for the panic/unpanic commands
- **permissions.py**: Staff authorization
- **rate_limiter.py**: Sliding-window admission control and automod cooldowns
- **audit_log.py**: Best-effort audit emission
- **platform.py**: Interface to the chat platform
"""
