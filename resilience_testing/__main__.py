"""Allow ``python -m resilience_testing``."""

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
