"""Infrastructure: configuration, observability and process lifecycle."""
