"""Order book state, reconstruction and sampling."""
