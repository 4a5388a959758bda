"""Entry point for ``python -m guest_gallery``."""

import sys

from guest_gallery.cli import main

sys.exit(main())
