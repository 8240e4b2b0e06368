"""KML/KMZ ingestion pipeline and feature selection/assignment store."""
