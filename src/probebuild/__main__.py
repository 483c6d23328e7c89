import sys

from probebuild.cli import main

sys.exit(main())
