import sys

from geopresence.cli import main

sys.exit(main())
