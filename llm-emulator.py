#!/usr/bin/env python3
"""
LLM Emulator - deterministic mock server for LLM provider APIs

This is a convenience wrapper that calls the packaged CLI.
The actual implementation is in src/llm_emulator/cli.py

Usage:
    python llm-emulator.py serve examples/config.yaml --port 11434

For more information, see DESIGN.md
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from llm_emulator.cli import main

if __name__ == '__main__':
    main()
