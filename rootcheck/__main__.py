"""
Entry point for running rootcheck as a module.

Usage:
    python -m rootcheck
    python -m rootcheck --target-root /srv/chroot/unstable
    python -m rootcheck --list
"""

from .api.cli import main

if __name__ == "__main__":
    main()
