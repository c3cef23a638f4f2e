"""Run the live-reload development server."""

import sys

from hotreloader.cli import main

if __name__ == "__main__":
    sys.exit(main())
