"""
Package entry point for Dataset Exporter.
"""

from .cli import main

if __name__ == "__main__":
    main()
