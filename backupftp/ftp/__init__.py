"""FTP operations module for backupftp.

This module handles all FTP-related functionality:
- paths: URL normalization and path helpers
- listing: LIST output parsing (Unix and IIS6 dialects)
- FTPSession: Connection parameters and per-request connections
- RemoteScanner: Depth-bounded, filtered directory traversal
- FileTransfer: Resumable uploads and downloads
- RemoteRemover: Bottom-up recursive delete
- Exceptions: FTP-specific error types
"""
