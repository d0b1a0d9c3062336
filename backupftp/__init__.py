"""backupftp - FTP client library for database backup and restore jobs.

Subpackages:
- ftp: Listing parser, sessions, traversal, transfers and deletes
- config: Persisted client settings and keyring credentials
- utils: Logging and input validation
"""

__version__ = "1.0.0"
