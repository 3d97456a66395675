"""CLI module for reply-guard."""
