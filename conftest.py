import os
import sys
from pathlib import Path

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("GFX_LOCAL_CACHE_DIR", "/tmp/gfx-project-cache-test")
os.environ.setdefault("GFX_HISTORY_LIMIT", "50")
for name in ("GFX_REMOTE_BASE_URL", "GFX_REMOTE_TOKEN", "GFX_DATA_ENDPOINT_BASE_URL"):
    os.environ.pop(name, None)
