"""YAML configuration loading, validation and logging setup."""
