"""Allow ``python -m procyard``."""

from procyard.cli.main import main

main()
