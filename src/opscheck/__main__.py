import sys

from opscheck.cli import main

sys.exit(main())
