"""
Dataset Exporter.

Authenticates against the Hugging Face Hub with PKCE OAuth, runs the parquet
and manifest export jobs to completion, and publishes both as a Hub dataset.
"""

__version__ = "1.0.0"
