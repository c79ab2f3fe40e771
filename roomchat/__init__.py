"""TCP chat servers and clients: echo, broadcast relay, and rooms with file transfer."""

__version__ = "0.1.0"