import sys

from fleetmon.cli.main import main

sys.exit(main())
