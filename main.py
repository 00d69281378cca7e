#!/usr/bin/env python3
"""
Dark-Frame True Random Number Generator - Main Entry Point

This program generates true random numbers from the dark-current noise of
a camera sensor whose lens is covered. See darkframe.cli for the commands.

Usage:
    python main.py generate [-n SAMPLES] [--raw] [--output FILE]
    python main.py analyze FILE
    python main.py monitor
"""

import sys

from darkframe.cli import main


if __name__ == '__main__':
    sys.exit(main())
