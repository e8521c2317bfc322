"""Blocking sockets with deadlines: TCP, TLS, SOCKS5, suffix and terminator framing, and a red-black tree."""

__version__ = "0.1.0"
__all__ = ["rbtree", "socks5", "suffix", "tcp", "term", "tls"]