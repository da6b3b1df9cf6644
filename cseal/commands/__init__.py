"""Command implementations behind the cseal CLI."""
