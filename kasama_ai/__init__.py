"""Kasama AI request orchestration layer."""
