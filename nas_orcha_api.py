#!/usr/bin/env python3
"""
NAS App Orchestrator API Server

This script starts the API server for the NAS App Orchestrator.
"""

import os
import sys
import logging

from nas_orcha.api.server import start_api_server
from nas_orcha.config import STATE_DIR_ENV


def main():
    """Main entry point for the API server."""
    import argparse

    parser = argparse.ArgumentParser(description='NAS App Orchestrator API Server')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8081, help='Port to bind to')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--state-dir', default=None, help='Directory to store task state in')

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.state_dir:
        os.environ[STATE_DIR_ENV] = args.state_dir

    try:
        start_api_server(
            host=args.host,
            port=args.port,
            debug=args.debug,
            config_path=args.config
        )
    except KeyboardInterrupt:
        print("Shutting down API server...")
        sys.exit(0)


if __name__ == '__main__':
    main()
