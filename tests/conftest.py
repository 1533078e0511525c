from __future__ import annotations

import faulthandler
import os
import socket
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

faulthandler.enable()  # Ensure crashes emit tracebacks.
socket.setdefaulttimeout(10)

# Keep test logs out of the working tree and the home directory.
os.environ.setdefault("TBFLOW_LOG_DIR", tempfile.mkdtemp(prefix="tbflow-logs-"))
