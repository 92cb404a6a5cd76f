"""Shared helpers: command execution, logging, task output capture and the package-manager lock."""
