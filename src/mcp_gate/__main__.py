import sys

from mcp_gate.cli import main

sys.exit(main())
