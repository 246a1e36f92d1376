"""
Configuration management for ModGuard.

- **app_configuration.py**: YAML loader for process-wide settings (command
  prefix, staff roles, data locations and rate limits). Falls back to defaults
  on missing or malformed files.

- **automod_config.py**: YAML automod settings and the ordered rule list.
  Writes the defaults on first run and is re-read before every automod pass.
"""
