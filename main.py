#!/usr/bin/env python3
"""Entry point for running the adaptive research CLI from a source checkout."""

from adaptive_research.cli import main

if __name__ == "__main__":
    main()
