"""
Codebot CLI package.

This package provides a command-line interface (`cb`) that applies a
natural-language modification request to the project in the current
directory.  A run:

* Snapshots every text file of the project, skipping excluded directories.
* Sends the request and the snapshot to an OpenAI-compatible chat
  completion endpoint, asking for complete replacement files as JSON.
* Recovers the JSON answer from whatever prose surrounds it, retrying
  the round trip until a usable answer arrives.
* Writes the proposed files and, in git mode, commits them.

See `cli.py` for the entry point and `pipeline.py` for the retry loop.
"""

__all__ = [
    "cli",
]
