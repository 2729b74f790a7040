#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[mcp] browser={os.environ.get('MCP_COOKIES_BROWSER', 'default')} | "
    f"login_timeout={os.environ.get('MCP_LOGIN_TIMEOUT', '120')}s | "
    f"allowlist={os.environ.get('MCP_ALLOW_HOSTS', '*')}",
    file=sys.stderr,
)

from mcp_servers.cookie_fetch.main import main  # noqa: E402

if __name__ == "__main__":
    main()
