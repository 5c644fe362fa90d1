#!/usr/bin/env python3
"""
Branch Banking Entry Point

Starts the FastAPI server with the branch banking transaction engine.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from branch_banking.api import run_server
from branch_banking.config import get_config
from branch_banking.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("🏦 Starting Branch Banking...")
    print(f"📁 Records stored in: {config.data_path}")
    print(f"💳 Overdraft fee {config.overdraft_fee}, lock after {config.overdraft_count_cap} overdrafts")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=config.log_level.upper() == "DEBUG"
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Branch Banking...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
