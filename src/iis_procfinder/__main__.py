#!/usr/bin/env python3
"""
Entry point for python -m iis_procfinder
"""

from iis_procfinder.cli import main

if __name__ == "__main__":
    main()
