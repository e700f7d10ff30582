"""
Project-wide PyTest bootstrap

Puts every `*/src` directory on sys.path so tests can import the project's
packages without editable installs, and fails early when the async test
plugin is missing.
"""

from pathlib import Path
import os, sys

# Keep the suite hermetic: no real origin, no stray .env overrides.
os.environ.setdefault("REMOTE_BASE_URL", "")
os.environ.setdefault("SERVICE_LOG_LEVEL", "WARNING")

ROOT = Path(__file__).parent.resolve()
_paths = (
    [str(ROOT)]
    + [str(p) for p in (ROOT / "packages").glob("*/src")]  # packages/*/src
    + [str(p) for p in (ROOT / "services").glob("*/src")]  # services/*/src
)
for _p in reversed(_paths):
    if _p not in sys.path:
        sys.path.insert(0, _p)

try:
    __import__("pytest_asyncio")
except ImportError as exc:
    raise RuntimeError(
        "pytest_asyncio is required for async tests – "
        "install the project with the [test] extra."
    ) from exc
