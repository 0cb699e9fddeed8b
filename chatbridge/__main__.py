"""Entry point for `python -m chatbridge`."""

from chatbridge.cli import main

main()
