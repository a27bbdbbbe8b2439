"""Module entrypoint.

Allows:
    python -m mcp_log_diagnosis_server
"""

from __future__ import annotations

from mcp_log_diagnosis_server.server.diagnosis_server import main

if __name__ == "__main__":
    main()
