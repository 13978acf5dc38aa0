#!/usr/bin/env python3
"""
Loan Calculation Service Entry Point

Starts the FastAPI server with host, port and logging taken from LOANCALC_*
environment variables.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from loancalc.api import run_server
from loancalc.config import get_config
from loancalc.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    print("Starting Loan Calculation Service...")
    print(f"Calculation engine: {config.calculation_service_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\nShutting down Loan Calculation Service...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
