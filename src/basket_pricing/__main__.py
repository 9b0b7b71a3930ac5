"""Allow ``python -m basket_pricing``."""

import sys

from basket_pricing.cli import main

if __name__ == "__main__":
    sys.exit(main())
