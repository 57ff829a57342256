"""New-content notification fan-out and the in-app inbox."""
