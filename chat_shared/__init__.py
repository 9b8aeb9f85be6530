"""Connection lifecycle and message-exchange core shared by client and server."""
