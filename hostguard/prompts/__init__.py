"""Prompt templates for AI diagnosis."""
