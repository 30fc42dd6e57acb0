"""Allow ``python -m k3d_gitops``."""

from __future__ import annotations

import sys

from k3d_gitops.cli import main

if __name__ == "__main__":
    sys.exit(main())
