import sys

from wsrun.cli import main

sys.exit(main())
