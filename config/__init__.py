"""Run configuration defaults."""
