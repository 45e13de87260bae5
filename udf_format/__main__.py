import sys

from udf_format.cli import main

sys.exit(main())
