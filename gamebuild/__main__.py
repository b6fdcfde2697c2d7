import sys

from gamebuild.cli import main

sys.exit(main())
