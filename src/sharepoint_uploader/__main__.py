import sys

from sharepoint_uploader.cli import main

sys.exit(main())
