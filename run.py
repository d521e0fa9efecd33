#!/usr/bin/env python3
"""
ATM Ledger Entry Point

Starts the FastAPI server with settings from ATM_* environment variables.
"""

import sys

from atm_ledger.api import run_server
from atm_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting ATM Ledger...")
    print(f"Persistence: {config.database_url if config.persistence_enabled else 'disabled'}")
    print(f"Cheque clearing delay: {config.cheque_clearing_delay_seconds}s")
    print(f"API available at: http://localhost:{config.api_port}")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down ATM Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
