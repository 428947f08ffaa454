"""Printer discovery, name resolution and label encoding."""
