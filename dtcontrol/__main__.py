import sys

from dtcontrol.cli import main

sys.exit(main())
