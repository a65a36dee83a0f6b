"""
Entry point for running as a module.

Usage: python -m browser_launcher launch URL
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
