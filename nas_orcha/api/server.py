"""
API server for the NAS App Orchestrator.

This module provides the main entry point for starting the API server.
"""

import logging

from nas_orcha.api.routes import app, initialize


logger = logging.getLogger('nas_orchestrator.api')


def start_api_server(host: str = '0.0.0.0', port: int = 8081, debug: bool = False,
                     config_path: str = None):
    """
    Start the API server.

    Args:
        host: Host to bind to
        port: Port to bind to
        debug: Whether to enable debug mode
        config_path: YAML configuration file
    """
    orchestrator = initialize(config_path=config_path)
    logger.info(f"Task state stored in {orchestrator.config.state_dir}")

    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    finally:
        orchestrator.shutdown(timeout=30)


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    start_api_server(debug=True)
