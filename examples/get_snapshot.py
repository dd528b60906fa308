#!/usr/bin/env python3
"""
Example script to show the snapshot of a VM or vApp in vCloud Director.

Usage: python get_snapshot.py [name [href]]
With no arguments, every VM listed under 'entities' in the config is queried.
"""

import sys
import os
import json
import logging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from vcd_client import load_config, load_session, load_inventory, find_entity, EntityHandle
from vcd_snapshot import get_snapshot

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

def main():
    if len(sys.argv) > 3:
        print("Usage: python get_snapshot.py [name [href]]")
        sys.exit(1)

    try:
        config = load_config()
        session = load_session(config)

        if len(sys.argv) == 1:
            records = get_snapshot(session, enumerate_vms=lambda: load_inventory(config))
        else:
            name = sys.argv[1]
            entity = EntityHandle(name, sys.argv[2]) if len(sys.argv) == 3 else find_entity(config, name)
            if entity is None:
                print(f"Unknown entity '{name}': pass its href or add it to the config")
                sys.exit(1)
            record = get_snapshot(session, entity)
            records = [record] if record else []

        if not records:
            print("No snapshots found.")
        for record in records:
            print(json.dumps(record.to_dict(), indent=2))

    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
