"""
gitkeeper: a local control layer for git.

Encrypted multi-account credentials, password-gated repository
protection, and a threshold watcher that pushes your work for you
without stepping on your own commands.
"""

import os

__version__ = "0.1.0"
__author__ = "gitkeeper contributors"

GITKEEPER_HOME = os.environ.get("GITKEEPER_HOME", "~/.gitkeeper")
