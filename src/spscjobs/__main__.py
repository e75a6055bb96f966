"""Entry point: ``python -m spscjobs``."""

from spscjobs.cli import main

if __name__ == "__main__":
    main()
