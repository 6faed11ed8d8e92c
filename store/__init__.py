"""MongoDB persistence for published events and restaurant records."""
