"""Settlement service: pricing, verification and chain confirmation."""
