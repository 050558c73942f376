import sys

from partition_leases.cli import main

sys.exit(main())
