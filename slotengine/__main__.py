"""
Entry point for ``python -m slotengine``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
