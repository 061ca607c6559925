#!/usr/bin/env python3
"""
Basic example showing a TreeContainer driving a slow in-memory source.

This example demonstrates:
- Activating a deep node and watching its trail expand
- Debounced loading states
- Toggling nodes through the controller
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for development
sys.path.insert(0, str(Path(__file__).parent.parent))

from lazytree import TreeContainer, format_tree
from lazytree.testing import InMemoryTreeSource


def build_source() -> InMemoryTreeSource:
    return InMemoryTreeSource.from_nested({
        'docs': {
            'guide': {'install': {}, 'usage': {}},
            'reference': {'api': {}},
        },
        'src': {'lazytree': {'loader.py': {}, 'controller.py': {}}},
        'README.md': {},
    }, delay=0.05)


async def main():
    """Walk through a few controller operations, printing every published tree."""
    active_id = sys.argv[1] if len(sys.argv) > 1 else 'usage'
    updates = 0

    def show(tree):
        nonlocal updates
        updates += 1
        print(f"\n[update {updates}]")
        print(format_tree(tree))

    async with TreeContainer(build_source(),
                             default_state={'active_id': active_id},
                             loader_options={'loading_transition_ms': 20}) as container:
        container.subscribe(show)
        await container.settle()

        print("\nCollapsing 'docs' and expanding 'src'...")
        container.controller.toggle_expanded('docs')
        container.controller.set_expanded('src')
        await container.settle()

        print(f"\nLoader stats: {container.loader.get_stats()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("lazytree - Basic Example")
    print("=" * 50)
    asyncio.run(main())
