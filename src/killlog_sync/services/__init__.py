"""Killlog Sync services: persistence and the polling pipeline."""
