"""ZeroSend - zero-retention end-to-end encrypted file transfer.

The server only ever handles ciphertext and a recipient-wrapped file key.
The wrapped key lives in a short-TTL cache and is deleted outright once the
recipient completes the download, so nothing the server keeps can be used to
reconstruct the file after the transfer ends.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
