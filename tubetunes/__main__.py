import sys

from tubetunes.app import main

sys.exit(main())
