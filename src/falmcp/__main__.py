"""Entry point for ``python -m falmcp`` and desktop client configs."""

from falmcp.cli import main

raise SystemExit(main())
