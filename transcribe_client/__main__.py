"""Package entry point for ``python -m transcribe_client``.

WHY: Users run the client as ``python -m transcribe_client upload clip.mp3``.
Python's ``-m`` flag looks for ``__main__.py`` inside the package and
executes it.

HOW: Delegates to the CLI's main() function.
"""

import sys

from transcribe_client.cli import main

if __name__ == "__main__":
    sys.exit(main())
