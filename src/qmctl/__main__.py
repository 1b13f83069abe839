"""Entry point for running qmctl as a module.

This allows running the CLI with:
    python -m qmctl
"""

from qmctl.cli.main import main

if __name__ == "__main__":
    main()
