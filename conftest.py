"""Root conftest.py to configure pytest."""

import sys
from pathlib import Path

# Add the package root to sys.path so 'smart_auth' can be imported without installing
package_root = Path(__file__).parent / "packages" / "smart-auth"
if str(package_root) not in sys.path:
    sys.path.insert(0, str(package_root))
