"""Allow `python -m sipcoin`."""

from sipcoin.cli import main

if __name__ == "__main__":
    main()
