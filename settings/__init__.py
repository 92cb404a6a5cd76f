"""Provisioner settings models and their loader."""
