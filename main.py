#!/usr/bin/env python3
"""
School Access Policy Engine - Main Entry Point
==============================================

Policy decision engine combining role-based (RBAC) and attribute-based
(ABAC) access control with contextual conditions and a risk score.

Usage:
    python main.py --help            # Show available commands
    python main.py init              # Initialize database
    python main.py demo              # Load demo school data
    python main.py users list        # List users
    python main.py test access ...   # Test an access decision
    python main.py test scenario     # Run the demo scenarios
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cli.main import app

if __name__ == "__main__":
    app()
