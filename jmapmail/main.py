"""Main entry point for ``python -m jmapmail.main``."""

from .cli import main

if __name__ == "__main__":
    main()
