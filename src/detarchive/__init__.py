"""
detarchive — deterministic content-addressable archives.

Identical directory trees always serialize to identical tar.gz bytes,
and therefore to identical content hashes. Dedup and cache layers can
use that hash as a key they can trust.
"""

import os

__version__ = "0.1.0"

DETARCHIVE_HOME = os.environ.get("DETARCHIVE_HOME", "~/.detarchive")
