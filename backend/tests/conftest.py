import os
import tempfile

# Module-level services open their database on import; keep them off the real data directory
os.environ.setdefault(
    "SPACEBIO_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="spacebio-tests-"), "test.db")
)
