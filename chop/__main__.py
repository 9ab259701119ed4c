"""Entry point for running chop with `python -m chop`."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
