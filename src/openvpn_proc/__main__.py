"""openvpn-proc entry point.

Supports: python -m openvpn_proc
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
