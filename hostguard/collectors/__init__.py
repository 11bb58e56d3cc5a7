"""Metric and alert collectors."""
