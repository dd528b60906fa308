#!/usr/bin/env python3
"""
Example script to snapshot a VM or vApp in vCloud Director.
Any existing snapshot of the entity is replaced.

Usage: python create_snapshot.py <name> [href] [--memory] [--no-quiesce]
"""

import sys
import os
import json
import logging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from vcd_client import load_config, load_session, find_entity, EntityHandle
from vcd_snapshot import create_snapshot, CreateSnapshotOptions

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

def main():
    flags = [a for a in sys.argv[1:] if a.startswith('--')]
    args = [a for a in sys.argv[1:] if not a.startswith('--')]
    if not 1 <= len(args) <= 2 or set(flags) - {'--memory', '--no-quiesce'}:
        print("Usage: python create_snapshot.py <name> [href] [--memory] [--no-quiesce]")
        sys.exit(1)

    options = CreateSnapshotOptions(memory='--memory' in flags, quiesce='--no-quiesce' not in flags)

    try:
        config = load_config()
        session = load_session(config)
        entity = EntityHandle(args[0], args[1]) if len(args) == 2 else find_entity(config, args[0])
        if entity is None:
            print(f"Unknown entity '{args[0]}': pass its href or add it to the config")
            sys.exit(1)

        print(f"Creating snapshot of '{entity.name}'...")
        record = create_snapshot(session, entity, options)

        # The creation task is not awaited, so the snapshot may not be visible yet.
        if record:
            print(json.dumps(record.to_dict(), indent=2))
        else:
            print("Snapshot requested; it is not visible yet.")

    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
