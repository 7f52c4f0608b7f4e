"""
Entry point for running the client as a module.

This allows the package to be executed with: python -m mcplink
"""

from mcplink.cli import app

if __name__ == "__main__":
    app()
