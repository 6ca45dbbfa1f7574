#!/usr/bin/env python3
"""
Better Brew - parallel Homebrew package operations.

Usage:
    bbrew.py update                  # brew update
    bbrew.py upgrade                 # parallel fetch, then brew upgrade
    bbrew.py install PKG [PKG ...]   # parallel batched install
    bbrew.py reinstall --all         # parallel batched reinstall
"""

import os
import sys

# Allow running from a checkout without installing
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from better_brew.cli import run


if __name__ == "__main__":
    run()
