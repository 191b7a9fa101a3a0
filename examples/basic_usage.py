#!/usr/bin/env python3
"""
Basic usage example for the reality interface client.

This example demonstrates:
1. Connecting to the interface server
2. Declaring nodes and finishing a declaration pass
3. Writing values and public data
4. Polling the events the registry emitted

Prerequisites:
- Interface server running: reality-interfaces-server
"""

import math
import time

from reality_interfaces import InterfaceClient

OBJECT = "lamp"
FRAME = "controls"


def main():
    # Replace with your server's IP address
    server_host = "localhost"

    print(f"Connecting to interface server at {server_host}...")

    with InterfaceClient(server_host) as client:
        if not client.is_connected:
            print("Failed to connect to interface server")
            return

        print("Connected!")

        # Declaration pass: everything not declared here is removed on reconcile
        for node in ("brightness", "color", "power"):
            result = client.declare_node(OBJECT, FRAME, node)
            print(f"Declared {node}: {result}")
        client.reconcile(OBJECT, FRAME)

        print("\nFading brightness...")
        for step in range(20):
            value = (math.sin(step / 3.0) + 1) / 2
            client.write(OBJECT, FRAME, "brightness", round(value, 3))
            time.sleep(0.05)

        client.write_public_data(OBJECT, FRAME, "color", "hue", 210)
        client.advertise_connection(OBJECT, FRAME, "power")

        # Values and resets the object engine sends to this lamp
        client.on("dispatch_value", lambda e: print(f"  value for {e['node']}: {e['data']}"))
        client.on("reset", lambda e: print("  reset requested"))
        client.on("value", lambda e: print(f"  wrote {e['node']}: {e['data']['value']}"))

        print("\nRegistry events:")
        count = client.dispatch_events()
        print(f"  ({count} events)")

        print("\nNodes:")
        nodes = client.get_all_nodes(OBJECT, FRAME) or {}
        for node_id, node in nodes.get("nodes", {}).items():
            print(f"  {node_id}: value={node['data']['value']} at ({node['x']}, {node['y']})")

        print("\nStatus:", client.status())


if __name__ == "__main__":
    main()
