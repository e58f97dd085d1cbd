"""CLI entry point for shootx.cli module.

Enables execution via: python -m shootx.cli <command>
"""

from shootx.cli.admin import main

if __name__ == "__main__":
    raise SystemExit(main())
