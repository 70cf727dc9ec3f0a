"""Built-in check modules, addressable by bare name (e.g. ``engine.use("diskspace")``)."""
