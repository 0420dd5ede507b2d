"""
Entry point for running goplay as a module: python -m goplay
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
