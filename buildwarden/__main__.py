"""
Entry point for running buildwarden via `python -m buildwarden`.
"""

from .cli import main

if __name__ == "__main__":
    main()
