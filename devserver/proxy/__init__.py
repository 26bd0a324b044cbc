"""Backend forwarding, response rewriting and websocket relaying."""
