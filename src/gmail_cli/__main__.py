import sys

from gmail_cli.cli import main

sys.exit(main())
