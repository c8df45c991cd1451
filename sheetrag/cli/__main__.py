import sys

from sheetrag.cli.main import main

sys.exit(main())
