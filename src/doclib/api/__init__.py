"""HTTP routers for the document library."""
