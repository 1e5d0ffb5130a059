"""
Cloud Backup — client-side sync engine for a remote backup service.

Backs up the locally held application state as JSON documents, lists,
renames and deletes them remotely, and restores them by merging into
the local state without ever dropping local-only records.
"""

import os

__version__ = "0.1.0"
__author__ = "cloudbackup"

BACKUP_HOME = os.environ.get("CLOUDBACKUP_HOME", "~/.cloudbackup")
DEFAULT_SERVER_ADDRESS = os.environ.get(
    "CLOUDBACKUP_DEFAULT_SERVER", "https://next-backup.hk.ellu.tech"
)
