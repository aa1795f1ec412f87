"""Entry point for ``python -m anidbnfo``."""

from anidbnfo.cli import app

if __name__ == "__main__":
    app()
