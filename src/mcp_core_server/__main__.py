import sys

from mcp_core_server.cli.main import main

sys.exit(main())
