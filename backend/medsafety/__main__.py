"""Allow ``python -m medsafety``."""

import sys

from medsafety.cli import main

sys.exit(main())
