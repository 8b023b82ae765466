#!/usr/bin/env python
"""
Setup script for nexusrag
"""
import re
from pathlib import Path

from setuptools import setup, find_packages

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read version from the package
init_text = (this_directory / "src" / "nexusrag" / "__init__.py").read_text(encoding="utf-8")
version_match = re.search(r'^__version__ = "([^"]+)"', init_text, re.MULTILINE)
if not version_match:
    raise RuntimeError("Unable to find __version__ in src/nexusrag/__init__.py")
version = version_match.group(1)


setup(
    name="nexusrag",
    version=version,
    description="Hybrid retrieval and indexing core: chunking, embeddings, RRF search, tag dedup",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Text Processing :: Indexing",
    ],
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.6.0",
        "loguru>=0.7.2",
        "pyyaml>=6.0.0",
        "numpy>=1.26.0",
        "aiohttp>=3.9.0",
        "click>=8.1.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.4.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=5.0.0",
            "mypy>=1.8.0",
            "black>=22.0.0",
            "ruff>=0.12.0",
            "types-pyyaml>=6.0.12",
        ],
    },
    entry_points={
        "console_scripts": [
            "nexusrag=nexusrag.cli:main",
        ],
    },
    include_package_data=True,
    package_data={
        "nexusrag": [
            "**/*.sql",
            "**/*.pyi",
        ],
    },
)
