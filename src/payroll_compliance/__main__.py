"""Entry point for ``python -m payroll_compliance``."""

import sys

from payroll_compliance.cli import main

if __name__ == "__main__":
    sys.exit(main())
