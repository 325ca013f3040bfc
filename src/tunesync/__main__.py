import sys

from tunesync.cli import main

sys.exit(main())
