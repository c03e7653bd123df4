"""Launch the dispatch-line API under Uvicorn, honouring the platform's PORT."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    from hvac_agent.main import app

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port, proxy_headers=True, forwarded_allow_ips="*")


if __name__ == "__main__":
    main()
