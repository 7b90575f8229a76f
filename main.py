"""CLI entrypoint for the trail timelapse service."""

import sys

from trail_timelapse.cli import main

if __name__ == "__main__":
    sys.exit(main())
