#!/usr/bin/env python3
"""
NAS App Orchestrator CLI

Command-line client for installing and controlling managed applications.
"""

from nas_orcha.cli.commands import app


if __name__ == '__main__':
    app()
