#!/usr/bin/env python3
"""Wrapper script to run the SprintDesk realtime relay.

Delegates to ``cli.webhooks.serve``, which binds the relay to a live store's
hub, fixing imports when run from project root or as a daemon.
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on sys.path so that "cli" and "webhooks" are importable
PROJECT_ROOT = Path(__file__).parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cli.webhooks import serve  # noqa: E402


def main() -> None:
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
