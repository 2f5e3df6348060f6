#!/usr/bin/env python3
"""
Check a MongoDB connection string

Connects through the same connection manager the admin panel uses, pings the
server and reports how many dashboard records the database holds.

Usage:
    python -m scripts.check_connection 'mongodb+srv://...'
    PATCHER_MONGODB_URI='mongodb://localhost:27017/app' python -m scripts.check_connection
"""

import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.errors import PatcherError
from api.logger import mask_uri
from utils.database_manager import ConnectionManager


def check_connection(uri: str, manager: ConnectionManager = None) -> tuple[bool, str]:
    """
    Connect to uri and count dashboard records.

    Returns:
        Tuple of (success, message)
    """
    manager = manager or ConnectionManager()
    try:
        manager.connect(uri)
        dashboards = manager.list_dashboards()
    except PatcherError as e:
        detail = f": {e.details}" if e.details else ""
        return False, f"{e.message}{detail}"
    finally:
        manager.disconnect()

    if len(dashboards) == 1:
        return True, f"Connection OK, 1 dashboard record ({dashboards[0].get('_id')})"
    return True, f"Connection OK, {len(dashboards)} dashboard records"


def main(argv=None):
    """Main function for command-line usage."""
    import argparse

    parser = argparse.ArgumentParser(description='Ping a MongoDB URI and count dashboard records')
    parser.add_argument('uri', nargs='?', default=os.environ.get('PATCHER_MONGODB_URI'),
                        help='Connection string (defaults to $PATCHER_MONGODB_URI)')
    args = parser.parse_args(argv)

    if not args.uri:
        print("✗ No URI given and PATCHER_MONGODB_URI is not set", file=sys.stderr)
        return 1

    print(f"Checking {mask_uri(args.uri)}...")
    success, message = check_connection(args.uri)

    if success:
        print(f"✓ {message}")
        return 0
    else:
        print(f"✗ {message}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
