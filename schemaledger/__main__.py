"""
schemaledger CLI Entry Point.

Usage:
    python -m schemaledger --database-url sqlite:///app.db run
"""

import sys

from schemaledger.cli import main

if __name__ == "__main__":
    sys.exit(main())
