import sys

from aws_invoker.cli import main

sys.exit(main())
