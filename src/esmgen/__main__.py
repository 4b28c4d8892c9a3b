"""Allow ``python -m esmgen``."""

from esmgen.cli import main

if __name__ == "__main__":
    main()
