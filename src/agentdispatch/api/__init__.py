"""HTTP boundary: routers, contracts and dependency wiring."""
