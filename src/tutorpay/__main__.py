"""Entry point for running the CLI with ``python -m tutorpay``."""

import sys

from tutorpay.cli import main

if __name__ == "__main__":
    sys.exit(main())
