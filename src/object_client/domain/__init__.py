"""Domain layer: tokens, objects, hashing and the protocol state machines."""
