"""
Main entry point for the tiledseg package.

Allows running: python -m tiledseg <command>
"""

import sys
from tiledseg.cli import main

if __name__ == "__main__":
    sys.exit(main())
