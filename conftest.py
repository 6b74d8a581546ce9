"""
Pytest configuration for the tiledseg test suite.

Puts the project root on the Python path so tests can import tiledseg
and the shared helpers under tests.fixtures without installing.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
