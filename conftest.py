import sys
from pathlib import Path

# Make `face_attributes` importable when pytest runs from a source checkout
project_root = Path(__file__).parent.absolute()
sys.path.insert(0, str(project_root))
