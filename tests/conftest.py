"""Root conftest.py for test configuration.

Ensures the local src/ directory takes priority over an installed bucketstore.
"""

import sys
from pathlib import Path

_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

for module_name in list(sys.modules.keys()):
    if module_name.startswith("bucketstore"):
        del sys.modules[module_name]
