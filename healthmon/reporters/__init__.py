"""Built-in reporters, loadable by bare name (``engine.reporter("json")``)."""
