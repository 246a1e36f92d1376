"""
Discord integration for ModGuard.

- **discord_platform.py**: py-cord implementation of the moderation platform
  (DMs, timeouts, kicks, bans, message deletion and log-channel embeds)

- **runtime.py**: Builds and owns the moderation components of one process

- **cogs/moderation_listener.py**: Runs automod on every message and dispatches
  the prefix moderation commands
"""
