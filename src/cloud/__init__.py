"""Backend clients shared by the nodes of one cluster."""
