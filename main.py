#!/usr/bin/env python3
"""
E-Learning Data Layer
Main entry point for the application

Usage:
    python main.py --help                  # Show help
    python main.py list users              # List a collection (seeding it if empty)
    python main.py search courses python   # Search a collection
    python main.py stats                   # Show statistics
    python main.py export -o backups       # Export every collection
    python main.py import backup.json      # Restore from a backup document
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv('config.env')

# Initialize structured logging from environment
from utils.logging_config import init_from_environment
init_from_environment()

from cli.main import main

if __name__ == '__main__':
    main()
