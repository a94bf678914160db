#!/usr/bin/env python3
"""Main entry point for the Taiwan holiday open data tool."""

from tw_holidays.cli import cli

if __name__ == '__main__':
    cli()
