"""Entry point for running reply-guard as a module: python -m reply_guard"""

from reply_guard.cli.commands import app

if __name__ == "__main__":
    app()
