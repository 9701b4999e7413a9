#main.py

"""
dirwatcher - watch a directory tree and react to changes

Usage:
    python main.py --watch /path/to/tree [--filter REGEX] [--callback "cmd %file% %event%"] [--debug]
"""
import sys

from dirwatcher.cli import main


if __name__ == "__main__":
    sys.exit(main())
