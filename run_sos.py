#!/usr/bin/env python3
"""
Run script for the StaySafe SOS workflow

Usage:
    python run_sos.py run                  # Start an SOS countdown
    python run_sos.py run --duration 15    # Longer countdown
    python run_sos.py contacts             # Show emergency contacts
    python run_sos.py devices              # List audio devices

Make sure to install the package first:
    pip install -e .
"""

import sys

from staysafe.main import main

if __name__ == '__main__':
    sys.exit(main())
