"""Allow ``python -m lookhere`` to start the monitor."""

from lookhere.server import main

main()
