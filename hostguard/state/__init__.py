"""Durable local state: tracked issues, cooldowns and the run lock."""
