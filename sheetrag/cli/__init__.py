"""Command-line entry point: python -m sheetrag.cli."""
