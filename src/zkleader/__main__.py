"""Run the zkleader CLI with ``python -m zkleader``."""

from zkleader.cli import main

main()
