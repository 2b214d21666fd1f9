"""HTTP surface for the SBLOC Monte Carlo engine."""
