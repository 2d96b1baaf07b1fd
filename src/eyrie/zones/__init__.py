"""Zone model, providers, catalog and the secondary zone transfer driver."""
