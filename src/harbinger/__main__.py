"""Allow ``python -m harbinger``; used by detached monitors."""

from harbinger.cli import main

if __name__ == "__main__":
    main()
