"""Configuration models, YAML parsing and logging setup."""
