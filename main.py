#!/usr/bin/env python3
"""
main.py: Command-line interface for image-batch-pipeline.

Equivalent to the installed `image-batch` command:
    python main.py scans/ --auto-detect --analyze --api remote
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from image_batch_pipeline.cli import main

if __name__ == "__main__":
    main()
