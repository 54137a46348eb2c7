"""Entry point for running teams-relay as a module.

Allows running the application with:
    python -m teamsrelay

This delegates to the Typer CLI app.
"""

from teamsrelay.cli import app

if __name__ == "__main__":
    app()
