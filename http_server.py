#!/usr/bin/env python3
"""
jamcraft HTTP Server Runner
"""

import sys

from jamcraft.interfaces.cli import CLI


def main():
    """Run the Slack events server."""
    sys.exit(CLI().run(['serve'] + sys.argv[1:]))


if __name__ == '__main__':
    main()
