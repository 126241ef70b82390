import sys

from sqldialog.cli import main

sys.exit(main())
