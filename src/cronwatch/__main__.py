"""Allow `python -m cronwatch` to launch the daemon."""

import asyncio
import sys

from cronwatch.main import main

sys.exit(asyncio.run(main()))
