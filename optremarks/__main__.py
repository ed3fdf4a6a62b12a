"""Allow ``python -m optremarks``."""

from optremarks.main import main

if __name__ == "__main__":
    raise SystemExit(main())
