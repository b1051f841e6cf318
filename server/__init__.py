"""HTTP REST shim exposing the cluster services tools behind API-key auth."""
