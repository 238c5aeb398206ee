"""Allow ``python -m docbrief.cli`` execution."""

import sys

from docbrief.cli.commands import main

sys.exit(main())
