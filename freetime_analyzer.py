#!/usr/bin/env python3
"""
Convenience entry point for running the analyzer directly.

Usage: python freetime_analyzer.py [command] [options]
"""

from freetime.cli.app import app

if __name__ == "__main__":
    app()
