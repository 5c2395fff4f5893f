"""Allow running the server with ``python -m cyclecast``."""

from cyclecast.main import main

main()
