"""Entry point for running as module: python -m vrclog"""

import sys

from vrclog.cli.commands import main

if __name__ == "__main__":
    sys.exit(main())
