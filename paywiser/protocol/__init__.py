"""ClearNode protocol layer: framing, decoding, correlation, handshake, sessions."""
