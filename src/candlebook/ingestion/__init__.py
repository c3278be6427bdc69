"""Exchange websocket connectors and the recorder that persists them."""
