"""Bearer-token authentication and membership aggregation for app APIs."""
