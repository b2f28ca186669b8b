"""Build the srcview package."""
from setuptools import setup
import sys
import setuptools

print(f'srcview, {sys.platform=}, setuptools={getattr(setuptools, "__version__", "???")}')

# Metadata is all in pyproject.toml, there are no extension modules.
setup()
