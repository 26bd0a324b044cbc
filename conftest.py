# Make `import devserver` resolve to this checkout when pytest runs from the
# repository root without an installed package.
import os
import sys

REPO_ROOT = os.path.dirname(__file__)

if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)
