from __future__ import annotations

import os

# must run before txretry.infra.config is imported
os.environ.setdefault("TXRETRY_DB_URL", "sqlite:///./txretry-test.db")
os.environ.setdefault("TXRETRY_LOG_DIR", "logs")
