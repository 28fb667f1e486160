"""Entry point for the ebook-ai package."""

import sys
from ebook_ai.cli import main

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(130)
