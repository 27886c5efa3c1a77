"""Command line interface for paytrack."""
