"""Chat client: session facade and console front end."""

from chat_client.client import ChatClient, connect_with_retry, marshal_to_loop

__all__ = ["ChatClient", "connect_with_retry", "marshal_to_loop"]
