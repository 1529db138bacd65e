#!/usr/bin/env python3
"""
dt-explorer - Control Plane Launcher

Starts the dt API server, keeps a single controller per data directory, and
serves the local front-end channel until the backend exits or the user quits.

Usage:
    python run.py                    # Spawn the API server and serve the front end
    python run.py --dev              # Bridge to an API server you started yourself
    python run.py --data-dir PATH    # Override the data root (data/, log/, lock file)
    python run.py --verbose          # Debug logging

Environment Variables:
    - DT_EXPLORER_*: any control plane setting, e.g. DT_EXPLORER_API_PORT=55556
    - DT_DEBUG: forwarded to the API server when set
"""

import sys

from dtcontrol.cli import main

if __name__ == '__main__':
    sys.exit(main())
