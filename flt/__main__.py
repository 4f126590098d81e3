"""Allow ``python -m flt``."""
from .cli import main

if __name__ == "__main__":
    main()
