#!/usr/bin/env python3
"""
shellsage - LLM shell assistant for your terminal.

Runs the CLI from a source checkout without installing the package.
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))


def main():
    try:
        from shellsage.main import cli
    except ImportError as e:
        print(f"Error: Failed to import required modules: {e}")
        print("Please make sure you have installed the package with:")
        print("  pip install -e .")
        sys.exit(1)

    try:
        cli()
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}")
        if os.environ.get("SHELLSAGE_VERBOSE"):
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
