#!/usr/bin/env python3
"""
Example script to revert a VM or vApp to its snapshot in vCloud Director.
Asks for confirmation unless --force is given or the config sets
'confirm: auto-approved'.

Usage: python revert_snapshot.py <name> [href] [--force]
"""

import sys
import os
import logging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from vcd_client import load_config, load_session, find_entity, EntityHandle
from vcd_snapshot import revert_snapshot, ConfirmationGate

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

def main():
    force = '--force' in sys.argv[1:]
    args = [a for a in sys.argv[1:] if a != '--force']
    if not 1 <= len(args) <= 2:
        print("Usage: python revert_snapshot.py <name> [href] [--force]")
        sys.exit(1)

    try:
        config = load_config()
        session = load_session(config)
        entity = EntityHandle(args[0], args[1]) if len(args) == 2 else find_entity(config, args[0])
        if entity is None:
            print(f"Unknown entity '{args[0]}': pass its href or add it to the config")
            sys.exit(1)

        revert_snapshot(session, entity, ConfirmationGate.from_config(config), force=force)

    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
