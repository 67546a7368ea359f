import sys

from pagedocx.cli import main

sys.exit(main())
