"""Shared utilities: retry driver and logging configuration."""
