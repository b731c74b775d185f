# conftest.py: root-level pytest configuration
import sys
import os

# Ensure the project root is on sys.path so that
# ``import fluxforest`` works without an editable install.
sys.path.insert(0, os.path.dirname(__file__))

collect_ignore_glob = ["__init__.py"]
