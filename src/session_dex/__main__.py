"""Allows running the command line as a module:
    python -m session_dex
"""

from session_dex.cli import main

if __name__ == "__main__":
    main()
