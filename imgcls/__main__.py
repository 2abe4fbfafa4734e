"""Entry point for ``python -m imgcls``."""

from imgcls.cli import main

raise SystemExit(main())
