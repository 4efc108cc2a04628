"""Allow running as ``python -m contactcore``."""

import sys

from .cli import main

sys.exit(main())
