"""Setup script for SheetRAG."""
from setuptools import find_packages, setup

if __name__ == "__main__":
    setup(
        name="sheetrag",
        version="0.1.0",
        description="Row-level evidence retrieval over spreadsheet cells",
        python_requires=">=3.10",
        packages=find_packages(where=".", include=("sheetrag*", "core*", "pipeline*", "storage*")),
        package_dir={"": "."},
        install_requires=[
            "sentence-transformers>=2.2",
            "ollama>=0.4",
        ],
        extras_require={"test": ["pytest>=7"]},
        entry_points={"console_scripts": ["sheetrag = sheetrag.cli.main:main"]},
    )
