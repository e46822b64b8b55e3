import sys

from stdio_tap.cli import main

sys.exit(main())
