#!/usr/bin/env python3
"""

Usage:
    python Main.py [--url http://localhost:3000] [--timeout 15]

Or
    python -m countdown_sync [--url http://localhost:3000] [--timeout 15]
"""

from countdown_sync.__main__ import main

if __name__ == "__main__":
    main()
