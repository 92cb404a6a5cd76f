"""Debian package management."""
