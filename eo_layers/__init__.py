"""Earth observation map layers over administrative regions."""
